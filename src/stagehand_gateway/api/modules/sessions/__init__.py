"""Session module for the gateway.

Session registry, stream lifecycle controller, and message router.
"""
from .lifecycle import SSE_HEADERS, StreamLifecycleController
from .messages import SESSION_ID_PARAM, MessageRouter
from .registry import Session, SessionRegistry
from .router import create_session_router

__all__ = [
    'MessageRouter',
    'SESSION_ID_PARAM',
    'SSE_HEADERS',
    'Session',
    'SessionRegistry',
    'StreamLifecycleController',
    'create_session_router',
]
