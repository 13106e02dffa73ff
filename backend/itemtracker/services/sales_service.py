# Overview: Sale groups and sale lines with transactional stock updates.

"""
Sales Service - sale groups, sale lines, stock consistency

A sale group is one buyer transaction; each Sale row is one line item.
Lines move ACTIVE -> RETURNED (terminal).

CONSISTENCY RULES:
- total_amount is always quantity_sold * sale_price, computed here.
- Selling requires the item to be owned by the seller, in status in_stock,
  and to hold at least the requested quantity. All lines are validated
  before anything is written.
- Creating a sale writes the group, its lines and the stock decrements in a
  single transaction, with the item rows locked.
- Editing quantity_sold moves stock by the delta against the item's current
  quantity, not by recomputing from the original sale.
- Returning with add_to_stock puts quantity_sold back on the item if it still
  exists; otherwise the restore is skipped.
- Deleting a line or a group never touches stock.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import date

from ..extensions import db
from ..models import Item, ItemCategory, Sale, SaleGroup, SaleStatus
from ..money import line_total, to_number
from ..validation import NotFoundError
from . import history_service
from .concurrency import lock_for_update, run_with_retry
from ..time_utils import today, utcnow

SALE_MUTABLE_FIELDS = {"quantity_sold", "sale_price", "buyer_name", "buyer_phone", "notes", "sale_date"}
GROUP_MUTABLE_FIELDS = {"buyer_name", "buyer_phone", "notes", "sale_date"}


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InsufficientStockError(SaleError):
    """Requested quantity exceeds what the item currently holds."""

    def __init__(self, item: Item, requested: int, available: int, message: str | None = None):
        super().__init__(
            message or f"Insufficient stock. Available: {available}",
            details={
                "item_id": item.id,
                "item_name": item.name,
                "requested": requested,
                "available": available,
            },
        )


def _locked_items(user_id: int, item_ids: set[int]) -> dict[int, Item]:
    items = lock_for_update(
        db.session.query(Item)
        .filter(Item.user_id == user_id, Item.id.in_(item_ids))
        .order_by(Item.id.asc())
    ).all()
    return {item.id: item for item in items}


def _validate_lines(user_id: int, lines: list[dict]) -> dict[int, Item]:
    """
    Check ownership, status and stock for every line. Quantities for the same
    item on several lines are summed before comparing with stock.
    """
    if not lines:
        raise SaleError("At least one item is required")

    requested: dict[int, int] = {}
    for line in lines:
        requested[line["item_id"]] = requested.get(line["item_id"], 0) + line["quantity_sold"]

    items = _locked_items(user_id, set(requested))

    for item_id, qty in requested.items():
        item = items.get(item_id)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found")
        if item.category != ItemCategory.IN_STOCK.value:
            raise SaleError(
                "Can only sell items that are in stock",
                details={"item_id": item.id, "item_name": item.name, "category": item.category},
            )
        available = item.quantity or 0
        if available < qty:
            raise InsufficientStockError(
                item,
                requested=qty,
                available=available,
                message=f"Insufficient stock for {item.name}. Available: {available}",
            )

    return items


def create_multi_item_sale(
    *,
    user_id: int,
    lines: list[dict],
    buyer_name: str | None = None,
    buyer_phone: str | None = None,
    notes: str | None = None,
    sale_date: date | None = None,
) -> SaleGroup:
    """
    Record one buyer transaction with one or more lines.

    `lines` items are validated dicts: item_id, quantity_sold, sale_price and
    optional notes. Raises NotFoundError, SaleError or InsufficientStockError
    before writing anything.
    """
    sale_date = sale_date or today()

    def _op():
        items = _validate_lines(user_id, lines)

        group = SaleGroup(
            user_id=user_id,
            buyer_name=buyer_name,
            buyer_phone=buyer_phone,
            notes=notes,
            sale_date=sale_date,
        )
        db.session.add(group)
        db.session.flush()

        for line in lines:
            item = items[line["item_id"]]
            sale = Sale(
                user_id=user_id,
                sale_group_id=group.id,
                item_id=item.id,
                item_name=item.name,
                quantity_sold=line["quantity_sold"],
                sale_price=line["sale_price"],
                total_amount=line_total(line["quantity_sold"], line["sale_price"]),
                currency=item.currency,
                buyer_name=buyer_name,
                buyer_phone=buyer_phone,
                notes=line.get("notes") or notes,
                sale_date=sale_date,
                status=SaleStatus.ACTIVE,
            )
            db.session.add(sale)

            new_quantity = item.quantity - line["quantity_sold"]
            history_service.record_quantity_change(item, new_quantity)
            item.quantity = new_quantity

        db.session.commit()
        return group

    return run_with_retry(_op)


def create_sale(
    *,
    user_id: int,
    item_id: int,
    quantity_sold: int,
    sale_price,
    buyer_name: str | None = None,
    buyer_phone: str | None = None,
    notes: str | None = None,
    sale_date: date | None = None,
) -> Sale:
    """Single-item sale; stored as a one-line group like every other sale."""
    group = create_multi_item_sale(
        user_id=user_id,
        lines=[{"item_id": item_id, "quantity_sold": quantity_sold, "sale_price": sale_price}],
        buyer_name=buyer_name,
        buyer_phone=buyer_phone,
        notes=notes,
        sale_date=sale_date,
    )
    return group.sales[0]


def get_sale(sale_id: int, user_id: int, *, lock: bool = False) -> Sale:
    query = db.session.query(Sale).filter_by(id=sale_id, user_id=user_id)
    if lock:
        query = lock_for_update(query)
    sale = query.first()
    if not sale:
        raise NotFoundError("Sale not found")
    return sale


def list_sales_by_date(user_id: int, sale_date: date) -> list[Sale]:
    return (
        db.session.query(Sale)
        .filter_by(user_id=user_id, sale_date=sale_date)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .all()
    )


def update_sale(*, sale_id: int, user_id: int, patch: dict) -> Sale:
    """
    Edit a sale line.

    A quantity_sold change adjusts the item by the delta (new - old): it needs
    `delta` units in stock when growing and gives units back when shrinking.
    total_amount is recomputed whenever quantity or price is touched.
    """
    def _op():
        sale = get_sale(sale_id, user_id, lock=True)

        new_qty = patch.get("quantity_sold")
        if new_qty is not None and new_qty != sale.quantity_sold:
            if sale.status == SaleStatus.RETURNED:
                raise SaleError("Cannot change quantity of a returned sale")
            if sale.item_id is None:
                raise NotFoundError("Associated item not found")

            item = lock_for_update(
                db.session.query(Item).filter_by(id=sale.item_id, user_id=user_id)
            ).first()
            if not item:
                raise NotFoundError("Associated item not found")

            delta = new_qty - sale.quantity_sold
            available = item.quantity or 0
            if available < delta:
                raise InsufficientStockError(
                    item,
                    requested=delta,
                    available=available,
                    message=f"Insufficient stock for this change. Available: {available}",
                )

            history_service.record_quantity_change(item, available - delta)
            item.quantity = available - delta

        for k, v in patch.items():
            if k not in SALE_MUTABLE_FIELDS or v is None and k in {"quantity_sold", "sale_price", "sale_date"}:
                continue
            setattr(sale, k, v)

        sale.total_amount = line_total(sale.quantity_sold, sale.sale_price)

        db.session.commit()
        return sale

    return run_with_retry(_op)


def return_sale(*, sale_id: int, user_id: int, add_to_stock: bool) -> tuple[Sale, bool]:
    """
    Mark a sale returned. Returns (sale, stock_restored).

    Raises SaleError if the sale is already returned.
    """
    def _op():
        sale = get_sale(sale_id, user_id, lock=True)

        if sale.status == SaleStatus.RETURNED:
            raise SaleError("Sale already returned")

        sale.status = SaleStatus.RETURNED
        sale.returned_at = utcnow()

        restored = False
        if add_to_stock and sale.item_id is not None:
            item = lock_for_update(
                db.session.query(Item).filter_by(id=sale.item_id, user_id=user_id)
            ).first()
            if item:
                new_quantity = (item.quantity or 0) + sale.quantity_sold
                history_service.record_quantity_change(item, new_quantity)
                item.quantity = new_quantity
                restored = True

        db.session.commit()
        return sale, restored

    return run_with_retry(_op)


def delete_sale(*, sale_id: int, user_id: int) -> None:
    """Hard-delete one line. Stock is not touched."""
    sale = get_sale(sale_id, user_id)
    db.session.delete(sale)
    db.session.commit()


def get_sale_group(group_id: int, user_id: int) -> SaleGroup:
    group = db.session.query(SaleGroup).filter_by(id=group_id, user_id=user_id).first()
    if not group:
        raise NotFoundError("Sale group not found")
    return group


def update_sale_group(*, group_id: int, user_id: int, patch: dict) -> SaleGroup:
    """Edit buyer/notes/date of a group; buyer and date are mirrored on its lines."""
    group = get_sale_group(group_id, user_id)

    for k, v in patch.items():
        if k not in GROUP_MUTABLE_FIELDS:
            continue
        if k == "sale_date" and v is None:
            continue
        setattr(group, k, v)
        if k != "notes":
            for sale in group.sales:
                setattr(sale, k, v)

    db.session.commit()
    return group


def delete_sale_group(*, group_id: int, user_id: int) -> None:
    """Delete a group and all of its lines. Stock is not touched."""
    group = get_sale_group(group_id, user_id)
    db.session.delete(group)
    db.session.commit()


def _grouped_query(user_id: int):
    return (
        db.session.query(SaleGroup, Sale, Item.purchase_price)
        .outerjoin(Sale, Sale.sale_group_id == SaleGroup.id)
        .outerjoin(Item, Item.id == Sale.item_id)
        .filter(SaleGroup.user_id == user_id)
        .order_by(SaleGroup.created_at.desc(), SaleGroup.id.desc(), Sale.id.asc())
    )


def _fold_groups(rows) -> list[dict]:
    """
    Fold (group, sale, purchase_price) rows into {group..., items: [...]}.

    Groups whose lines were all deleted come back with items == [].
    """
    groups: "OrderedDict[int, dict]" = OrderedDict()
    for group, sale, purchase_price in rows:
        entry = groups.get(group.id)
        if entry is None:
            entry = group.to_dict()
            entry["items"] = []
            groups[group.id] = entry
        if sale is not None:
            line = sale.to_dict()
            line["purchase_price"] = to_number(purchase_price) if purchase_price is not None else 0.0
            entry["items"].append(line)
    return list(groups.values())


def find_grouped_by_date(user_id: int, sale_date: date) -> list[dict]:
    rows = _grouped_query(user_id).filter(SaleGroup.sale_date == sale_date).all()
    return _fold_groups(rows)


def find_grouped_by_date_range(user_id: int, start: date, end: date) -> list[dict]:
    rows = _grouped_query(user_id).filter(
        SaleGroup.sale_date >= start,
        SaleGroup.sale_date <= end,
    ).all()
    return _fold_groups(rows)
