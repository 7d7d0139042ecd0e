"""Configuration for the gateway API."""
import os
from dataclasses import dataclass, field


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, '').strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid {name}='{raw}'. Must be an integer.")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, '').strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Invalid {name}='{raw}'. Must be a number.")


def _default_cors_origins() -> list[str]:
    """Get CORS origins from CORS_ORIGINS, allowing all origins by default.

    MCP clients connect from arbitrary hosts, so the permissive default
    matches what the stream endpoint is for.
    """
    env_origins = os.environ.get('CORS_ORIGINS', '')
    if env_origins:
        return [o.strip() for o in env_origins.split(',') if o.strip()]
    return ['*']


@dataclass
class GatewayConfig:
    """Central configuration for the gateway routers.

    Passed to every create_*_router() factory so nothing reads the
    environment after startup.
    """
    host: str = field(default_factory=lambda: os.environ.get('HOST', '0.0.0.0'))
    port: int = field(default_factory=lambda: _env_int('PORT', 3001))

    # Route paths. message_path is also advertised to clients in the
    # endpoint event, so it must match what the message router mounts.
    sse_path: str = field(default_factory=lambda: os.environ.get('SSE_PATH', '/sse'))
    message_path: str = field(default_factory=lambda: os.environ.get('MESSAGE_PATH', '/messages'))

    # Seconds between SSE keep-alive comments on an idle stream.
    ping_interval: float = field(default_factory=lambda: _env_float('SSE_PING_INTERVAL', 15.0))

    cors_origins: list[str] = field(default_factory=_default_cors_origins)

    # Browserbase backend
    browserbase_api_url: str = field(
        default_factory=lambda: os.environ.get('BROWSERBASE_API_URL', 'https://api.browserbase.com')
    )
    backend_timeout_seconds: float = field(
        default_factory=lambda: _env_float('BACKEND_TIMEOUT_SECONDS', 10.0)
    )

    # Per-session artifact cap; oldest entries are evicted past this.
    artifact_max_per_session: int = field(
        default_factory=lambda: _env_int('ARTIFACT_MAX_PER_SESSION', 50)
    )

    server_name: str = 'stagehand'
    server_version: str = '0.1.0'

    def validate_startup(self) -> None:
        """Fail fast on configuration that would break routing.

        Raises:
            ValueError: Describing every problem found.
        """
        problems: list[str] = []
        for name in ('sse_path', 'message_path'):
            value = getattr(self, name)
            if not value.startswith('/'):
                problems.append(f"{name} must start with '/': {value!r}")
            if '?' in value:
                problems.append(f"{name} must not contain a query string: {value!r}")
        if self.sse_path == self.message_path:
            problems.append('sse_path and message_path must differ')
        if not (0 < self.port < 65536):
            problems.append(f'port out of range: {self.port}')
        if self.ping_interval <= 0:
            problems.append(f'ping_interval must be positive: {self.ping_interval}')
        if self.backend_timeout_seconds <= 0:
            problems.append(f'backend_timeout_seconds must be positive: {self.backend_timeout_seconds}')
        if self.artifact_max_per_session < 1:
            problems.append(f'artifact_max_per_session must be >= 1: {self.artifact_max_per_session}')
        if problems:
            raise ValueError('Invalid gateway configuration: ' + '; '.join(problems))
