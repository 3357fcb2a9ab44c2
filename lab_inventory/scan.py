"""
What happens when someone opens an item page, in particular from a scanned
label carrying ``?notify=1``.

Each page activation gets a ``ScanActivation``. Running it loads the item
and, for notify activations, calls the dispatcher at most once no matter how
often (or how concurrently) the activation is rendered again.
"""
import secrets
import threading
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Hashable, Optional

from .errors import LabelPipelineError, LoadFailure
from .logger import get_logger

logger = get_logger(__name__)


class ScanState(str, Enum):
    LOADING = "loading"
    LOADED = "loaded"
    LOAD_FAILED = "load_failed"
    DISPATCHING = "dispatching"
    DISPATCHED = "dispatched"
    DISPATCH_FAILED = "dispatch_failed"
    CONFIRMED = "confirmed"


# Indicator shown on the confirmation page
SENT = "sent"
PENDING = "pending"
FAILED = "failed"


@dataclass
class ScanView:
    state: ScanState
    item: Any = None
    indicator: Optional[str] = None
    notify: bool = False


class ScanActivation:
    def __init__(self, item_id: str, notify: bool,
                 loader: Callable[[str], Any],
                 dispatch: Callable[[Any], Any]):
        self.item_id = item_id
        self.notify = notify
        self._loader = loader
        self._dispatch = dispatch
        self._lock = threading.Lock()
        self._dispatch_claimed = False
        self.state = ScanState.LOADING
        self.outcome: Optional[ScanState] = None
        self.item = None

    @property
    def dispatch_claimed(self) -> bool:
        return self._dispatch_claimed

    def _load(self):
        if self.item is not None:
            return self.item
        item = self._loader(self.item_id)
        if item is None:
            raise LoadFailure(f"Item {self.item_id} not found")
        self.item = item
        return item

    def _claim(self) -> bool:
        with self._lock:
            if self._dispatch_claimed:
                return False
            self._dispatch_claimed = True
            self.state = ScanState.DISPATCHING
            return True

    def run(self) -> ScanView:
        try:
            item = self._load()
        except LoadFailure as e:
            logger.info("Scan view for %s could not load item: %s", self.item_id, e)
            self.state = ScanState.LOAD_FAILED
            return ScanView(ScanState.LOAD_FAILED, notify=self.notify)

        if not self.notify:
            self.state = ScanState.LOADED
            return ScanView(ScanState.LOADED, item)

        if self._claim():
            try:
                self._dispatch(item)
            except LabelPipelineError as e:
                logger.warning("Scan notification for item %s failed: %s", self.item_id, e)
                self.outcome = ScanState.DISPATCH_FAILED
            except Exception:
                logger.exception("Scan notification for item %s raised", self.item_id)
                self.outcome = ScanState.DISPATCH_FAILED
            else:
                self.outcome = ScanState.DISPATCHED
            self.state = ScanState.CONFIRMED

        return ScanView(ScanState.CONFIRMED, item, self.indicator(), notify=True)

    def indicator(self) -> str:
        if self.outcome == ScanState.DISPATCHED:
            return SENT
        if self.outcome == ScanState.DISPATCH_FAILED:
            return FAILED
        return PENDING


class ActivationRegistry:
    """Keeps recent activations by key so reloads reuse the same one."""

    def __init__(self, max_size: int = 1024):
        self.max_size = max_size
        self._items: "OrderedDict[Hashable, ScanActivation]" = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def new_token() -> str:
        return secrets.token_urlsafe(12)

    def get_or_create(self, key: Hashable, factory: Callable[[], ScanActivation]) -> ScanActivation:
        with self._lock:
            activation = self._items.get(key)
            if activation is None:
                activation = factory()
                self._items[key] = activation
                while len(self._items) > self.max_size:
                    self._items.popitem(last=False)
            else:
                self._items.move_to_end(key)
            return activation

    def __len__(self):
        return len(self._items)
