"""FastAPI application and session routing for the gateway.

Example:
    # Simple usage with create_app()
    from stagehand_gateway.api import create_app
    app = create_app()

    # Custom configuration
    from stagehand_gateway.api import create_app, GatewayConfig
    app = create_app(GatewayConfig(port=8080, ping_interval=5))

    # Shared registry, e.g. to inspect sessions from tests
    from stagehand_gateway.api import SessionRegistry
    registry = SessionRegistry()
    app = create_app(registry=registry)
"""

# Configuration
from .config import GatewayConfig

# Credentials and errors
from .credentials import Credentials, credential_sources, extract_credentials
from .errors import (
    AuthenticationMissingError,
    GatewayError,
    HandlerError,
    MalformedRequestError,
    SessionExistsError,
    SessionSetupError,
    UnknownSessionError,
)
from .signals import CompletionSignal, SessionState, TerminalEvent

# Sessions
from .modules.sessions import (
    MessageRouter,
    Session,
    SessionRegistry,
    StreamLifecycleController,
)

# App factory
from .app import create_app

__all__ = [
    # Configuration
    'GatewayConfig',
    # Credentials and errors
    'Credentials',
    'credential_sources',
    'extract_credentials',
    'AuthenticationMissingError',
    'GatewayError',
    'HandlerError',
    'MalformedRequestError',
    'SessionExistsError',
    'SessionSetupError',
    'UnknownSessionError',
    'CompletionSignal',
    'SessionState',
    'TerminalEvent',
    # Sessions
    'MessageRouter',
    'Session',
    'SessionRegistry',
    'StreamLifecycleController',
    # App factory
    'create_app',
]
