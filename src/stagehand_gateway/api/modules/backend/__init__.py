"""Browser backend for gateway sessions."""
from .browserbase import (
    BackendResourcePool,
    BrowserbaseClient,
    BrowserSession,
    BrowserSessionPool,
    DEFAULT_API_URL,
)

__all__ = [
    'BackendResourcePool',
    'BrowserbaseClient',
    'BrowserSession',
    'BrowserSessionPool',
    'DEFAULT_API_URL',
]
