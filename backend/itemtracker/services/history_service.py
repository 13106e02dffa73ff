# Overview: Quantity change log and daily item snapshots.

"""
History & Snapshot Service

INVARIANTS:
- item_history is append-only. A row is written in the same transaction as
  the quantity change it records, and before the change is applied.
- item_snapshots holds at most one row per (item_id, snapshot_date).
  Snapshotting the same item twice on one day overwrites the value fields
  and refreshes created_at; it never inserts a second row.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Item, ItemHistory, ItemSnapshot, SnapshotType
from ..money import ZERO, to_number
from ..validation import NotFoundError
from .concurrency import lock_for_update
from itemtracker.time_utils import today, utcnow


def record_quantity_change(item: Item, new_quantity: int) -> ItemHistory | None:
    """
    Stage a history row for item.quantity -> new_quantity.

    Call before assigning the new quantity. Does not commit. Returns None when
    the quantity does not actually change.
    """
    before = item.quantity or 0
    if new_quantity == before:
        return None

    entry = ItemHistory(
        item_id=item.id,
        user_id=item.user_id,
        quantity_before=before,
        quantity_after=new_quantity,
        change_amount=new_quantity - before,
        changed_at=utcnow(),
    )
    db.session.add(entry)
    return entry


def get_item_history(item_id: int, user_id: int) -> list[ItemHistory]:
    return (
        db.session.query(ItemHistory)
        .filter_by(item_id=item_id, user_id=user_id)
        .order_by(ItemHistory.changed_at.desc(), ItemHistory.id.desc())
        .all()
    )


def _apply_snapshot_values(snapshot: ItemSnapshot, item: Item, snapshot_type: SnapshotType) -> None:
    snapshot.name = item.name
    snapshot.quantity = item.quantity or 0
    snapshot.price_per_unit = item.price_per_unit
    snapshot.currency = item.currency
    snapshot.purchase_price = item.purchase_price
    snapshot.category = item.category
    snapshot.snapshot_type = snapshot_type
    snapshot.created_at = utcnow()


def create_snapshot(
    item: Item,
    snapshot_date: date,
    snapshot_type: SnapshotType = SnapshotType.AUTO,
) -> ItemSnapshot:
    """
    Upsert the (item, snapshot_date) snapshot. Does not commit.

    The insert runs in a savepoint: if a concurrent writer created the row
    first, the unique constraint fires and we fall back to updating it.
    """
    existing = lock_for_update(
        db.session.query(ItemSnapshot).filter_by(item_id=item.id, snapshot_date=snapshot_date)
    ).first()
    if existing:
        _apply_snapshot_values(existing, item, snapshot_type)
        return existing

    snapshot = ItemSnapshot(item_id=item.id, user_id=item.user_id, snapshot_date=snapshot_date)
    _apply_snapshot_values(snapshot, item, snapshot_type)
    try:
        with db.session.begin_nested():
            db.session.add(snapshot)
    except IntegrityError:
        existing = db.session.query(ItemSnapshot).filter_by(
            item_id=item.id, snapshot_date=snapshot_date
        ).one()
        _apply_snapshot_values(existing, item, snapshot_type)
        return existing
    return snapshot


def create_user_snapshots(
    user_id: int,
    snapshot_type: SnapshotType = SnapshotType.AUTO,
    snapshot_date: date | None = None,
) -> int:
    """
    Snapshot every current item of the user for snapshot_date (default today).

    Commits once at the end. Returns the number of items processed.
    """
    snapshot_date = snapshot_date or today()
    items = db.session.query(Item).filter_by(user_id=user_id).order_by(Item.id.asc()).all()

    for item in items:
        create_snapshot(item, snapshot_date, snapshot_type)

    db.session.commit()
    return len(items)


def has_snapshot_on(user_id: int, snapshot_date: date | None = None) -> bool:
    snapshot_date = snapshot_date or today()
    return db.session.query(ItemSnapshot.id).filter_by(
        user_id=user_id, snapshot_date=snapshot_date
    ).first() is not None


def get_item_snapshots(item_id: int, user_id: int) -> list[ItemSnapshot]:
    return (
        db.session.query(ItemSnapshot)
        .filter_by(item_id=item_id, user_id=user_id)
        .order_by(ItemSnapshot.snapshot_date.desc())
        .all()
    )


def get_snapshots_by_date(user_id: int, snapshot_date: date) -> list[ItemSnapshot]:
    return (
        db.session.query(ItemSnapshot)
        .filter_by(user_id=user_id, snapshot_date=snapshot_date)
        .order_by(ItemSnapshot.name.asc(), ItemSnapshot.id.asc())
        .all()
    )


def summarize_snapshots(snapshots: list[ItemSnapshot]) -> list[dict]:
    """Total quantity and value (quantity x price_per_unit) per currency."""
    totals: dict[str, dict] = {}
    for snap in snapshots:
        currency = snap.currency or "USD"
        bucket = totals.setdefault(currency, {"quantity": 0, "value": ZERO})
        bucket["quantity"] += snap.quantity
        bucket["value"] += Decimal(snap.quantity) * (snap.price_per_unit or ZERO)

    return [
        {
            "currency": currency,
            "total_quantity": bucket["quantity"],
            "total_value": to_number(bucket["value"]),
        }
        for currency, bucket in sorted(totals.items())
    ]


def delete_snapshot(snapshot_id: int, user_id: int) -> None:
    snapshot = db.session.query(ItemSnapshot).filter_by(id=snapshot_id, user_id=user_id).first()
    if not snapshot:
        raise NotFoundError("Snapshot not found")
    db.session.delete(snapshot)
    db.session.commit()
