import uuid
from datetime import datetime
from typing import List, Optional

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import ForeignKey
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import relationship

from .errors import LoadFailure, MissingInput
from .logger import get_logger
from .status import CONSUMABLE, ITEM_KINDS, StockStatus, low_stock_status

logger = get_logger(__name__)

db = SQLAlchemy()


def new_item_id() -> str:
    return uuid.uuid4().hex


# ---------- Models ----------
class Item(db.Model):
    id = db.Column(db.String(64), primary_key=True, default=new_item_id)
    name = db.Column(db.String(256), nullable=False, index=True)
    kind = db.Column(db.String(16), nullable=False, default=CONSUMABLE)
    location = db.Column(db.String(128))
    quantity = db.Column(db.Float, default=0)
    min_quantity = db.Column(db.Float, default=0)
    purchase_link = db.Column(db.String(512))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    item_notes = relationship(
        "Note", back_populates="item", cascade="all,delete-orphan",
        order_by="Note.created_at.desc()",
    )

    def stock_status(self):
        return low_stock_status(self.kind, self.quantity, self.min_quantity)

    def is_low(self) -> bool:
        return self.stock_status() == StockStatus.LOW


class Note(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.String(64), ForeignKey("item.id"), index=True, nullable=False)
    body = db.Column(db.Text, nullable=False)
    author = db.Column(db.String(128))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    item = relationship("Item", back_populates="item_notes")


# ---------- Helpers ----------
def coerce_float(s) -> Optional[float]:
    if s is None or str(s).strip() == "":
        return None
    try:
        return float(s)
    except (TypeError, ValueError):
        return None


def _clean(value) -> Optional[str]:
    text = (value or "").strip() if isinstance(value, str) else value
    return text or None


# ---------- Store ----------
def create_item(name: str, kind: str = CONSUMABLE, location=None, quantity=None,
                min_quantity=None, purchase_link=None, notes=None) -> Item:
    name = (name or "").strip()
    if not name:
        raise MissingInput("Name is required.")
    if kind not in ITEM_KINDS:
        raise ValueError(f"Unknown item kind: {kind}")

    consumable = kind == CONSUMABLE
    item = Item(
        name=name,
        kind=kind,
        location=_clean(location),
        quantity=(coerce_float(quantity) or 0) if consumable else 0,
        min_quantity=(coerce_float(min_quantity) or 0) if consumable else 0,
        purchase_link=_clean(purchase_link),
        notes=_clean(notes),
    )
    db.session.add(item)
    db.session.commit()
    logger.info("Created item %s (%s)", item.id, item.name)
    return item


def get_item(item_id: str) -> Optional[Item]:
    try:
        return db.session.get(Item, item_id)
    except SQLAlchemyError as e:
        logger.exception("Loading item %s failed", item_id)
        raise LoadFailure(f"Item {item_id} could not be loaded") from e


def list_items() -> List[Item]:
    return db.session.execute(db.select(Item).order_by(Item.name.asc())).scalars().all()


def add_note(item_id: str, body: str, author=None) -> Note:
    body = (body or "").strip()
    if not body:
        raise MissingInput("Note text is required.")
    item = get_item(item_id)
    if item is None:
        raise LoadFailure(f"Item {item_id} not found")
    note = Note(item_id=item.id, body=body, author=_clean(author))
    db.session.add(note)
    db.session.commit()
    return note
