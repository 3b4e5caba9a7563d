from __future__ import annotations

import os

import requests

from backup_core.__version__ import __version__ as VERSION

DEFAULT_CONNECT_TIMEOUT = 15.0
DEFAULT_READ_TIMEOUT = 300.0
DEFAULT_TIMEOUT = (DEFAULT_CONNECT_TIMEOUT, DEFAULT_READ_TIMEOUT)

Timeout = tuple[float, float]


def build_user_agent(name: str = "kiwix-backup", version: str = VERSION) -> str:
    """Build a default User-Agent string."""
    return f"{name}/{version}"


def create_session(user_agent: str | None = None) -> requests.Session:
    """Create a requests session carrying the backup User-Agent."""
    session = requests.Session()
    session.headers["User-Agent"] = user_agent or build_user_agent()
    return session


def fetch_text(session: requests.Session, url: str, *, timeout: Timeout = DEFAULT_TIMEOUT) -> str:
    """GET ``url`` and return the body as text.

    Raises:
        requests.RequestException: On transport errors or non-2xx status.
    """
    response = session.get(url, timeout=timeout)
    response.raise_for_status()
    return response.text


def github_auth_headers() -> dict[str, str]:
    """Return an Authorization header when ``GITHUB_TOKEN`` is set."""
    token = os.environ.get("GITHUB_TOKEN", "").strip()
    if not token:
        return {}
    return {"Authorization": f"Bearer {token}"}
