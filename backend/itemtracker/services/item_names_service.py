# Overview: Per-user item name registry (autocomplete and bulk rename).

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Item, ItemName
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import run_with_retry


def list_names(user_id: int) -> list[ItemName]:
    return (
        db.session.query(ItemName)
        .filter_by(user_id=user_id)
        .order_by(ItemName.name.asc())
        .all()
    )


def find_name(user_id: int, name: str) -> ItemName | None:
    """Case-insensitive lookup of a trimmed name."""
    return db.session.query(ItemName).filter(
        ItemName.user_id == user_id,
        func.lower(ItemName.name) == name.strip().lower(),
    ).first()


def add_name(user_id: int, name: str) -> ItemName:
    """
    Register `name` for the user unless it already exists (case-insensitive).

    Stages the row in the current transaction; the caller commits.
    """
    trimmed = (name or "").strip()
    if not trimmed:
        raise ValidationError("Item name is required")

    existing = find_name(user_id, trimmed)
    if existing:
        return existing

    entry = ItemName(user_id=user_id, name=trimmed)
    db.session.add(entry)
    db.session.flush()
    return entry


def delete_name(name_id: int, user_id: int) -> None:
    entry = db.session.query(ItemName).filter_by(id=name_id, user_id=user_id).first()
    if not entry:
        raise NotFoundError("Item name not found")
    db.session.delete(entry)
    db.session.commit()


def rename(name_id: int, user_id: int, new_name: str) -> tuple[ItemName, int]:
    """
    Rename a registry entry and every item of the user carrying the old name.

    Matching is case-insensitive on the old name. Returns (entry, items_renamed).
    Raises ConflictError if another registry entry already holds new_name.
    """
    trimmed = (new_name or "").strip()
    if not trimmed:
        raise ValidationError("Item name is required")
    if len(trimmed) > ItemName.__table__.c.name.type.length:
        raise ValidationError("name exceeds max length 255")

    def _op():
        entry = db.session.query(ItemName).filter_by(id=name_id, user_id=user_id).first()
        if not entry:
            raise NotFoundError("Item name not found")

        clash = find_name(user_id, trimmed)
        if clash and clash.id != entry.id:
            raise ConflictError(f"Item name '{clash.name}' already exists")

        old_name = entry.name
        renamed = db.session.query(Item).filter(
            Item.user_id == user_id,
            func.lower(Item.name) == old_name.lower(),
        ).update({Item.name: trimmed}, synchronize_session=False)

        entry.name = trimmed
        db.session.commit()
        return entry, renamed

    return run_with_retry(_op)
