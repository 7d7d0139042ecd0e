"""Protocol servers that drive gateway streams."""
from .server import (
    ARTIFACT_URI_PREFIX,
    McpSessionServer,
    ServerFactory,
    SessionContext,
    SessionServer,
    TOOLS,
    artifact_uri,
    create_mcp_server,
)

__all__ = [
    'ARTIFACT_URI_PREFIX',
    'McpSessionServer',
    'ServerFactory',
    'SessionContext',
    'SessionServer',
    'TOOLS',
    'artifact_uri',
    'create_mcp_server',
]
