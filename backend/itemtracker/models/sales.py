from __future__ import annotations

import enum

from ..extensions import db
from itemtracker.money import to_number
from itemtracker.time_utils import to_iso_date, to_utc_z


class SaleStatus(str, enum.Enum):
    """
    Sale line lifecycle: ACTIVE -> RETURNED.

    RETURNED is terminal.
    """
    ACTIVE = "active"
    RETURNED = "returned"


class SaleGroup(db.Model):
    """
    One buyer transaction. Container for one or more Sale lines; has no
    status of its own.
    """
    __tablename__ = "sale_groups"
    __table_args__ = (
        db.Index("ix_sale_groups_user_date", "user_id", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    buyer_name = db.Column(db.String(255), nullable=True)
    buyer_phone = db.Column(db.String(50), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    sale_date = db.Column(db.Date, nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    sales = db.relationship(
        "Sale",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="Sale.id",
    )

    def to_dict(self) -> dict:
        return {
            "group_id": self.id,
            "buyer_name": self.buyer_name,
            "buyer_phone": self.buyer_phone,
            "notes": self.notes,
            "sale_date": to_iso_date(self.sale_date),
            "created_at": to_utc_z(self.created_at),
        }


class Sale(db.Model):
    """
    One line item of a SaleGroup.

    INVARIANT: total_amount == quantity_sold * sale_price after every write;
    always computed server-side.

    item_id is a weak reference: it survives as NULL when the item is deleted,
    item_name keeps the name as it was at sale time.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("quantity_sold > 0", name="ck_sales_quantity_positive"),
        db.Index("ix_sales_user_date_status", "user_id", "sale_date", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sale_group_id = db.Column(
        db.Integer,
        db.ForeignKey("sale_groups.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    item_id = db.Column(
        db.Integer,
        db.ForeignKey("items.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    item_name = db.Column(db.String(255), nullable=False)
    quantity_sold = db.Column(db.Integer, nullable=False)
    sale_price = db.Column(db.Numeric(10, 2), nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="USD")

    buyer_name = db.Column(db.String(255), nullable=True)
    buyer_phone = db.Column(db.String(50), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    sale_date = db.Column(db.Date, nullable=False, index=True)

    status = db.Column(
        db.Enum(
            SaleStatus,
            native_enum=False,
            length=16,
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        default=SaleStatus.ACTIVE,
        index=True,
    )
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    group = db.relationship("SaleGroup", back_populates="sales")
    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "sale_group_id": self.sale_group_id,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "quantity_sold": self.quantity_sold,
            "sale_price": to_number(self.sale_price),
            "total_amount": to_number(self.total_amount),
            "currency": self.currency,
            "buyer_name": self.buyer_name,
            "buyer_phone": self.buyer_phone,
            "notes": self.notes,
            "sale_date": to_iso_date(self.sale_date),
            "status": self.status.value,
            "returned_at": to_utc_z(self.returned_at) if self.returned_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
