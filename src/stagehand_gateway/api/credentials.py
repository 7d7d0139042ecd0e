"""Per-request credential extraction.

Credentials may arrive as query parameters or headers. Query parameters
win over headers, and empty strings count as absent.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass, fields
from typing import Mapping

# field name -> (query parameter, header)
CREDENTIAL_SOURCES: dict[str, tuple[str, str]] = {
    'browserbase_api_key': ('browserbase_api_key', 'x-browserbase-api-key'),
    'browserbase_project_id': ('browserbase_project_id', 'x-browserbase-project-id'),
    'openai_api_key': ('openai_api_key', 'x-openai-api-key'),
}

MISSING_CREDENTIALS_MESSAGE = (
    'Missing required API keys. Keys can be provided either as headers '
    '(x-browserbase-api-key, x-browserbase-project-id, x-openai-api-key) '
    'or as query parameters (browserbase_api_key, browserbase_project_id, openai_api_key)'
)


def _mask(value: str | None) -> str:
    return "'***'" if value else 'None'


@dataclass(frozen=True)
class Credentials:
    """Backend credentials resolved from a single request."""

    browserbase_api_key: str | None = None
    browserbase_project_id: str | None = None
    openai_api_key: str | None = None

    def __repr__(self) -> str:
        inner = ', '.join(f'{f.name}={_mask(getattr(self, f.name))}' for f in fields(self))
        return f'Credentials({inner})'

    def missing(self) -> list[str]:
        """Names of the fields that were not supplied."""
        return [f.name for f in fields(self) if not getattr(self, f.name)]

    @property
    def is_complete(self) -> bool:
        return not self.missing()

    @property
    def fingerprint(self) -> str:
        """Stable digest identifying these credentials without exposing them."""
        digest = hashlib.sha256()
        for f in fields(self):
            digest.update((getattr(self, f.name) or '').encode('utf-8'))
            digest.update(b'\x00')
        return digest.hexdigest()


def _first_non_empty(*values: str | None) -> str | None:
    for value in values:
        if value:
            return value
    return None


def extract_credentials(
    headers: Mapping[str, str],
    query_params: Mapping[str, str],
) -> Credentials:
    """Resolve each credential from the query string, falling back to headers.

    Header lookup relies on the mapping being case-insensitive, as
    Starlette's ``Headers`` is.
    """
    resolved = {
        name: _first_non_empty(query_params.get(param), headers.get(header))
        for name, (param, header) in CREDENTIAL_SOURCES.items()
    }
    return Credentials(**resolved)


def credential_sources(
    headers: Mapping[str, str],
    query_params: Mapping[str, str],
) -> dict[str, str]:
    """Report where each credential came from: 'query', 'header' or 'missing'."""
    sources: dict[str, str] = {}
    for name, (param, header) in CREDENTIAL_SOURCES.items():
        if query_params.get(param):
            sources[name] = 'query'
        elif headers.get(header):
            sources[name] = 'header'
        else:
            sources[name] = 'missing'
    return sources
