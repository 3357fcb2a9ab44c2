from typing import Mapping, Optional

from .errors import ResolutionFailure
from .logger import get_logger

logger = get_logger(__name__)

DEFAULT_SCHEME = "https"


def _first(value: Optional[str]) -> str:
    # Proxy chains append, so the client-facing value is the first one.
    if not value:
        return ""
    return value.split(",")[0].strip()


def resolve_base_url(headers: Mapping[str, str], override: Optional[str] = None) -> str:
    """
    Returns the public origin (``scheme://host``, no trailing slash).
    Priority:
      1) configured override
      2) X-Forwarded-Proto / X-Forwarded-Host from the proxy
      3) Host header
    An empty string means no host could be derived.
    """
    if override and override.strip():
        return override.strip().rstrip("/")

    host = _first(headers.get("X-Forwarded-Host")) or _first(headers.get("Host"))
    if not host:
        return ""

    scheme = _first(headers.get("X-Forwarded-Proto")).lower() or DEFAULT_SCHEME
    return f"{scheme}://{host.rstrip('/')}"


def require_base_url(headers: Mapping[str, str], override: Optional[str] = None) -> str:
    base = resolve_base_url(headers, override)
    if not base:
        logger.warning("No Host or X-Forwarded-Host header and no BASE_URL configured")
        raise ResolutionFailure("Cannot determine base URL")
    return base
