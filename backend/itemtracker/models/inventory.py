from __future__ import annotations

import enum

from ..extensions import db
from itemtracker.money import to_number
from itemtracker.time_utils import to_iso_date, to_utc_z


class ItemCategory(str, enum.Enum):
    """Inventory lifecycle status of an item (not a free-form tag)."""
    IN_STOCK = "in_stock"
    ON_THE_WAY = "on_the_way"
    NEED_TO_ORDER = "need_to_order"


class SnapshotType(str, enum.Enum):
    AUTO = "auto"
    MANUAL = "manual"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Item(db.Model):
    """
    Inventory item owned by exactly one user.

    quantity is never negative. Zero is allowed; deleting an item at zero
    stock is a caller decision, not a data-layer rule.

    Sales, history and snapshots keep a weak reference to the item
    (FK ON DELETE SET NULL) so financial records survive item deletion.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_items_quantity_non_negative"),
        db.Index("ix_items_user_category", "user_id", "category"),
        db.Index("ix_items_user_name", "user_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    # Selling price
    price_per_unit = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="USD")

    # Cost basis used for profit statistics
    purchase_price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    purchase_currency = db.Column(db.String(3), nullable=True)

    category = db.Column(db.String(100), nullable=True, index=True)
    image_url = db.Column(db.String(500), nullable=True)
    location = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User", backref=db.backref("items", lazy=True))

    def __repr__(self) -> str:
        return f"<Item id={self.id} name={self.name!r} qty={self.quantity} category={self.category!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description,
            "quantity": self.quantity,
            "price_per_unit": to_number(self.price_per_unit),
            "currency": self.currency,
            "purchase_price": to_number(self.purchase_price),
            "purchase_currency": self.purchase_currency,
            "category": self.category,
            "image_url": self.image_url,
            "location": self.location,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ItemName(db.Model):
    """
    Per-user registry of distinct item names (autocomplete, bulk rename).

    Uniqueness is case-insensitive per user; enforced in item_names_service
    because a functional unique index is not portable across dialects.
    """
    __tablename__ = "item_names"
    __table_args__ = (
        db.Index("ix_item_names_user_name", "user_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }


class ItemHistory(db.Model):
    """
    Append-only quantity change log.

    IMMUTABLE: one row per quantity-mutating event, written before the
    mutation is applied.
    """
    __tablename__ = "item_history"
    __table_args__ = (
        db.Index("ix_item_history_item_changed", "item_id", "changed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(
        db.Integer,
        db.ForeignKey("items.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    quantity_before = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)
    change_amount = db.Column(db.Integer, nullable=False)

    changed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "user_id": self.user_id,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "change_amount": self.change_amount,
            "changed_at": to_utc_z(self.changed_at),
        }


class ItemSnapshot(db.Model):
    """
    Value of one item as of one calendar day.

    At most one row per (item_id, snapshot_date); re-snapshotting the same
    day overwrites the value fields (see history_service.create_snapshot).
    """
    __tablename__ = "item_snapshots"
    __table_args__ = (
        db.UniqueConstraint("item_id", "snapshot_date", name="uq_item_snapshots_item_date"),
        db.Index("ix_item_snapshots_user_date", "user_id", "snapshot_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(
        db.Integer,
        db.ForeignKey("items.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    price_per_unit = db.Column(db.Numeric(10, 2), nullable=True)
    currency = db.Column(db.String(3), nullable=True)
    purchase_price = db.Column(db.Numeric(10, 2), nullable=True)
    category = db.Column(db.String(100), nullable=True)

    snapshot_date = db.Column(db.Date, nullable=False, index=True)
    snapshot_type = db.Column(
        db.Enum(SnapshotType, native_enum=False, length=16, values_callable=_enum_values),
        nullable=False,
        default=SnapshotType.AUTO,
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "user_id": self.user_id,
            "name": self.name,
            "quantity": self.quantity,
            "price_per_unit": to_number(self.price_per_unit),
            "currency": self.currency,
            "purchase_price": to_number(self.purchase_price),
            "category": self.category,
            "snapshot_date": to_iso_date(self.snapshot_date),
            "snapshot_type": self.snapshot_type.value if self.snapshot_type else None,
            "created_at": to_utc_z(self.created_at),
        }
