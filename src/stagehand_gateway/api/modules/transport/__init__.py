"""Stream transport for the gateway: the SSE stream handle."""
from .sse import DEFAULT_PING_INTERVAL, MessageHandler, SSEStreamHandle, format_event

__all__ = [
    'DEFAULT_PING_INTERVAL',
    'MessageHandler',
    'SSEStreamHandle',
    'format_event',
]
