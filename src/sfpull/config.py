from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import quote, urlsplit, urlunsplit

from .exceptions import ConfigurationError, MissingCredentialsError

DEFAULT_LOGIN_URL = "https://login.salesforce.com"
DEFAULT_API_VERSION = "60.0"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _env_int(name: str, default: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


@dataclass
class SessionConfig:
    """Settings for one Salesforce session."""

    login_url: str = DEFAULT_LOGIN_URL
    username: Optional[str] = None
    password: Optional[str] = None

    # Plain version number, e.g. "60.0"; a leading "v" is tolerated
    api_version: str = DEFAULT_API_VERSION

    use_compression: bool = False

    # Connect/read timeout in seconds; 0 means no timeout
    timeout: int = 0

    # Sent as the allOrNone hint on every write
    rollback_all_changes_on_error: bool = False

    # Include archived and deleted rows in plain queries
    query_all: bool = False

    proxy_url: Optional[str] = None
    proxy_user: Optional[str] = None
    proxy_password: Optional[str] = None

    @classmethod
    def from_env(cls) -> SessionConfig:
        """Load configuration from environment variables."""
        return cls(
            login_url=os.getenv("SF_LOGIN_URL", DEFAULT_LOGIN_URL),
            username=os.getenv("SF_USERNAME"),
            password=os.getenv("SF_PASSWORD"),
            api_version=os.getenv("SF_API_VERSION", DEFAULT_API_VERSION),
            use_compression=_env_flag("SF_USE_COMPRESSION"),
            timeout=_env_int("SF_TIMEOUT"),
            rollback_all_changes_on_error=_env_flag("SF_ROLLBACK_ON_ERROR"),
            query_all=_env_flag("SF_QUERY_ALL"),
            proxy_url=os.getenv("SF_PROXY_URL"),
            proxy_user=os.getenv("SF_PROXY_USER"),
            proxy_password=os.getenv("SF_PROXY_PASSWORD"),
        )

    @property
    def version(self) -> str:
        return self.api_version.lstrip("vV")

    def validate(self) -> None:
        missing = [
            k
            for k, v in {
                "SF_LOGIN_URL": self.login_url,
                "SF_USERNAME": self.username,
            }.items()
            if not v
        ]
        if missing:
            raise MissingCredentialsError(missing)
        if self.timeout < 0:
            raise ConfigurationError(f"timeout must be >= 0, got {self.timeout}")

    def request_timeout(self) -> Optional[float]:
        return float(self.timeout) if self.timeout > 0 else None

    def proxies(self) -> Dict[str, str]:
        """Explicit requests proxy mapping; empty when no proxy is configured."""
        if not self.proxy_url:
            return {}
        url = self.proxy_url
        if "://" not in url:
            url = f"http://{url}"
        if self.proxy_user:
            parts = urlsplit(url)
            cred = quote(self.proxy_user, safe="")
            if self.proxy_password:
                cred += ":" + quote(self.proxy_password, safe="")
            url = urlunsplit(
                (parts.scheme, f"{cred}@{parts.netloc}", parts.path, parts.query, parts.fragment)
            )
        return {"http": url, "https": url}
