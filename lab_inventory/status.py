from enum import Enum
from typing import Optional

CONSUMABLE = "consumable"
TOOL = "tool"
ITEM_KINDS = (CONSUMABLE, TOOL)


class StockStatus(str, Enum):
    LOW = "Low"
    OK = "OK"


def low_stock_status(kind: str, quantity=None, min_quantity=None) -> Optional[StockStatus]:
    """Low when a consumable is at or below its minimum; tools have no status."""
    if kind != CONSUMABLE:
        return None
    if float(quantity or 0) <= float(min_quantity or 0):
        return StockStatus.LOW
    return StockStatus.OK


def parse_status(value: Optional[str]) -> Optional[StockStatus]:
    text = (value or "").strip().lower()
    if text == "low":
        return StockStatus.LOW
    if text == "ok":
        return StockStatus.OK
    return None
