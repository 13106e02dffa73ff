# Overview: Item lifecycle (create/update/delete, duplicate detection, status moves).

"""
Items Service

Items are scoped to their owner: every lookup filters on user_id, and a row
owned by someone else is reported exactly like a missing row (NotFoundError).

DUPLICATES: Two items with the same trimmed name and the same category are
duplicates. create_item refuses to create one (DuplicateItemError carries the
existing row) unless the caller passes skip_duplicate_check=True; deciding
between merging quantities and force-creating is the client's call.

WEAK REFERENCES: Deleting an item keeps its sales, history and snapshots.
Their item_id is set to NULL here explicitly rather than relying on the
database's ON DELETE SET NULL, which SQLite only honors with foreign keys on.
"""

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Item, ItemCategory, ItemHistory, ItemSnapshot, Sale
from ..validation import ConflictError, NotFoundError, ValidationError
from . import history_service, item_names_service
from .concurrency import lock_for_update, run_with_retry

ITEM_MUTABLE_FIELDS = {
    "name",
    "description",
    "quantity",
    "price_per_unit",
    "currency",
    "purchase_price",
    "purchase_currency",
    "category",
    "image_url",
    "location",
}


class DuplicateItemError(ConflictError):
    """An item with the same name already exists in the requested category."""

    def __init__(self, duplicate: Item):
        super().__init__("Duplicate item found")
        self.duplicate = duplicate


def list_items(user_id: int) -> list[Item]:
    return (
        db.session.query(Item)
        .filter_by(user_id=user_id)
        .order_by(Item.created_at.desc(), Item.id.desc())
        .all()
    )


def get_item(item_id: int, user_id: int, *, lock: bool = False) -> Item:
    query = db.session.query(Item).filter_by(id=item_id, user_id=user_id)
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if not item:
        raise NotFoundError("Item not found")
    return item


def search_items(user_id: int, query: str) -> list[Item]:
    term = (query or "").strip()
    if not term:
        raise ValidationError("Search query is required")

    like = f"%{term}%"
    return (
        db.session.query(Item)
        .filter(
            Item.user_id == user_id,
            or_(
                Item.name.ilike(like),
                Item.description.ilike(like),
                Item.category.ilike(like),
                Item.location.ilike(like),
            ),
        )
        .order_by(Item.created_at.desc(), Item.id.desc())
        .all()
    )


def list_items_by_category(user_id: int, category: str) -> list[Item]:
    return (
        db.session.query(Item)
        .filter_by(user_id=user_id, category=category)
        .order_by(Item.created_at.desc(), Item.id.desc())
        .all()
    )


def find_duplicate(user_id: int, name: str, category: str, *, exclude_id: int | None = None) -> Item | None:
    """Exact (trimmed name, category) match among the user's items."""
    query = db.session.query(Item).filter(
        Item.user_id == user_id,
        Item.name == name.strip(),
        Item.category == category.strip(),
    )
    if exclude_id is not None:
        query = query.filter(Item.id != exclude_id)
    return query.order_by(Item.id.asc()).first()


def create_item(
    *,
    user_id: int,
    patch: dict,
    default_currency: str = "USD",
    skip_duplicate_check: bool = False,
) -> Item:
    """
    Create an item from a validated patch.

    Raises DuplicateItemError when a same-name item exists in the same
    category and skip_duplicate_check is False. Registers the name in the
    user's ItemName registry in the same transaction.
    """
    name = (patch.get("name") or "").strip()
    if not name:
        raise ValidationError("Item name is required")

    category = patch.get("category")
    if category and not skip_duplicate_check:
        duplicate = find_duplicate(user_id, name, category)
        if duplicate:
            raise DuplicateItemError(duplicate)

    currency = patch.get("currency") or default_currency
    quantity = patch.get("quantity")

    item = Item(
        user_id=user_id,
        name=name,
        description=patch.get("description"),
        quantity=1 if quantity is None else quantity,
        price_per_unit=patch.get("price_per_unit") or 0,
        currency=currency,
        purchase_price=patch.get("purchase_price") or 0,
        purchase_currency=patch.get("purchase_currency") or currency,
        category=category,
        image_url=patch.get("image_url"),
        location=patch.get("location"),
    )

    try:
        db.session.add(item)
        item_names_service.add_name(user_id, name)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return item


def update_item(*, item_id: int, user_id: int, patch: dict) -> Item:
    """
    Apply a validated partial update.

    A quantity change is logged to item_history before it is applied.
    """
    def _op():
        item = get_item(item_id, user_id, lock=True)

        if "quantity" in patch and patch["quantity"] is not None:
            history_service.record_quantity_change(item, patch["quantity"])

        for k, v in patch.items():
            if k not in ITEM_MUTABLE_FIELDS:
                continue
            setattr(item, k, v)

        if "name" in patch and patch["name"]:
            item_names_service.add_name(user_id, patch["name"])

        db.session.commit()
        return item

    return run_with_retry(_op)


def _detach_and_delete(item: Item) -> None:
    """Null weak references to the item, then delete it. Does not commit."""
    for model in (Sale, ItemHistory, ItemSnapshot):
        db.session.query(model).filter(model.item_id == item.id).update(
            {model.item_id: None}, synchronize_session=False
        )
    db.session.delete(item)


def delete_item(*, item_id: int, user_id: int) -> None:
    def _op():
        item = get_item(item_id, user_id, lock=True)
        _detach_and_delete(item)
        db.session.commit()

    run_with_retry(_op)
    # Sales loaded earlier in this session may still hold the old item_id
    db.session.expire_all()


def move_item(
    *,
    item_id: int,
    user_id: int,
    target_category: str,
    quantity: int | None = None,
) -> dict:
    """
    Move `quantity` units (default: all) of an item to another status.

    - Target status already has an item with the same name: its quantity is
      incremented (merge).
    - Otherwise a new item is created in the target status with the moved
      quantity and the source's other attributes.
    - A full move deletes the source; a partial move leaves the remainder.

    Runs as one transaction; every quantity change is logged to history.
    """
    allowed = {c.value for c in ItemCategory}
    if target_category not in allowed:
        raise ValidationError(f"category must be one of: {', '.join(sorted(allowed))}")

    def _op():
        source = get_item(item_id, user_id, lock=True)

        if source.category == target_category:
            raise ValidationError("Item is already in that status")

        available = source.quantity or 0
        qty = available if quantity is None else quantity
        if qty <= 0:
            raise ValidationError("quantity must be > 0")
        if qty > available:
            raise ValidationError(f"Cannot move {qty} units. Available: {available}")

        target = find_duplicate(user_id, source.name, target_category, exclude_id=source.id)
        merged = target is not None
        if merged:
            target = lock_for_update(db.session.query(Item).filter_by(id=target.id)).one()
            history_service.record_quantity_change(target, target.quantity + qty)
            target.quantity = target.quantity + qty
        else:
            target = Item(
                user_id=user_id,
                name=source.name,
                description=source.description,
                quantity=qty,
                price_per_unit=source.price_per_unit,
                currency=source.currency,
                purchase_price=source.purchase_price,
                purchase_currency=source.purchase_currency,
                category=target_category,
                image_url=source.image_url,
                location=source.location,
            )
            db.session.add(target)

        source_deleted = qty == available
        if source_deleted:
            _detach_and_delete(source)
        else:
            history_service.record_quantity_change(source, available - qty)
            source.quantity = available - qty

        db.session.commit()
        return {
            "source": None if source_deleted else source.to_dict(),
            "target": target.to_dict(),
            "source_deleted": source_deleted,
            "merged": merged,
            "moved_quantity": qty,
        }

    return run_with_retry(_op)
