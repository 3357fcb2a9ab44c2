from typing import Tuple
from urllib.parse import parse_qs, quote, unquote, urlsplit

from .errors import MissingInput, ResolutionFailure

ITEM_PREFIX = "/item/"
NOTIFY_PARAM = "notify"


def item_path(item_id: str, notify: bool = False) -> str:
    path = ITEM_PREFIX + quote(str(item_id), safe="")
    if notify:
        path += f"?{NOTIFY_PARAM}=1"
    return path


def encode_payload(base: str, item_id: str, notify: bool = False) -> str:
    """Builds the URL that gets printed into the barcode."""
    if not base:
        raise ResolutionFailure("Cannot build a payload without a base URL")
    if item_id is None or str(item_id) == "":
        raise MissingInput("Missing id")
    return base.rstrip("/") + item_path(item_id, notify)


def notify_requested(value) -> bool:
    return (value or "").strip() == "1"


def decode_payload(url: str) -> Tuple[str, bool]:
    parts = urlsplit(url or "")
    if not parts.path.startswith(ITEM_PREFIX):
        raise ValueError(f"Not an item reference: {url!r}")
    raw_id = parts.path[len(ITEM_PREFIX):]
    if not raw_id or "/" in raw_id:
        raise ValueError(f"Not an item reference: {url!r}")
    query = parse_qs(parts.query)
    notify = notify_requested((query.get(NOTIFY_PARAM) or [""])[0])
    return unquote(raw_id), notify


def scan_target(decoded: str) -> str:
    """Where the browser should go for a string read off a label."""
    text = (decoded or "").strip()
    if not text:
        raise MissingInput("Nothing was scanned")
    if text.startswith("http"):
        return text
    return item_path(text)
