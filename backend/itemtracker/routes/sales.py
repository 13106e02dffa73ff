# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes. Every route is scoped to the authenticated user."""

from flask import Blueprint, request, jsonify, g, current_app

from ..models import Sale, SaleGroup
from ..services import sales_service, reporting_service
from ..services.sales_service import SaleError
from ..time_utils import today
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_sale,
    parse_date_param,
    ValidationError,
    NotFoundError,
)
from ..decorators import require_auth

SALE_POLICY = ModelValidationPolicy(
    writable_fields={
        "item_id",
        "quantity_sold",
        "sale_price",
        "buyer_name",
        "buyer_phone",
        "notes",
        "sale_date",
    },
    required_on_create={"item_id", "quantity_sold", "sale_price"},
)

SALE_LINE_POLICY = ModelValidationPolicy(
    writable_fields={"item_id", "quantity_sold", "sale_price", "notes"},
    required_on_create={"item_id", "quantity_sold", "sale_price"},
)

SALE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"quantity_sold", "sale_price", "buyer_name", "buyer_phone", "notes", "sale_date"},
)

GROUP_POLICY = ModelValidationPolicy(
    writable_fields={"buyer_name", "buyer_phone", "notes", "sale_date"},
)


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _group_payload(group: SaleGroup) -> dict:
    data = group.to_dict()
    data["items"] = [s.to_dict() for s in group.sales]
    return data


@sales_bp.get("")
@require_auth
def sales_by_date_route():
    """Sale groups for one day (default today)."""
    raw = request.args.get("date")
    try:
        sale_date = parse_date_param(raw, "date") if raw else today()
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    groups = sales_service.find_grouped_by_date(g.user_id, sale_date)
    return jsonify({"sales": groups, "date": sale_date.isoformat()}), 200


@sales_bp.get("/range")
@require_auth
def sales_by_range_route():
    """
    Sale groups and statistics for startDate..endDate (inclusive).

    Groups left without lines are not returned. Statistics cover active
    sales only, per currency; no currency conversion is done here.
    """
    try:
        start = parse_date_param(request.args.get("startDate"), "startDate")
        end = parse_date_param(request.args.get("endDate"), "endDate")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    if start > end:
        return jsonify({"error": "startDate must be on or before endDate"}), 400

    try:
        groups = [
            grp for grp in sales_service.find_grouped_by_date_range(g.user_id, start, end)
            if grp["items"]
        ]
        rows = reporting_service.get_stats_by_date_range(g.user_id, start, end)
        statistics = reporting_service.build_statistics(rows)
    except Exception:
        current_app.logger.exception("Failed to load sales range")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sales": groups, "statistics": statistics}), 200


@sales_bp.post("")
@require_auth
def create_sale_route():
    """Single-item sale (stored as a one-line group)."""
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Sale, payload=payload, policy=SALE_POLICY, partial=False)
        enforce_rules_sale(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        sale = sales_service.create_sale(
            user_id=g.user_id,
            item_id=patch["item_id"],
            quantity_sold=patch["quantity_sold"],
            sale_price=patch["sale_price"],
            buyer_name=patch.get("buyer_name"),
            buyer_phone=patch.get("buyer_phone"),
            notes=patch.get("notes"),
            sale_date=patch.get("sale_date"),
        )
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict()}), 201


@sales_bp.post("/multi")
@require_auth
def create_multi_sale_route():
    """
    Multi-item sale.

    Body: {items: [{item_id, quantity_sold, sale_price, notes?}],
           buyer_name?, buyer_phone?, notes?, sale_date?}
    Nothing is written unless every line passes ownership, status and stock
    checks.
    """
    payload = request.get_json(silent=True) or {}
    raw_lines = payload.get("items")

    if not isinstance(raw_lines, list) or not raw_lines:
        return jsonify({"error": "At least one item is required"}), 400

    header = {k: v for k, v in payload.items() if k != "items"}
    try:
        group_patch = validate_payload(model=SaleGroup, payload=header, policy=GROUP_POLICY, partial=True)
        lines = []
        for idx, raw in enumerate(raw_lines):
            if not isinstance(raw, dict):
                raise ValidationError(f"items[{idx}] must be an object")
            line = validate_payload(model=Sale, payload=raw, policy=SALE_LINE_POLICY, partial=False)
            enforce_rules_sale(line)
            lines.append(line)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        group = sales_service.create_multi_item_sale(
            user_id=g.user_id,
            lines=lines,
            buyer_name=group_patch.get("buyer_name"),
            buyer_phone=group_patch.get("buyer_phone"),
            notes=group_patch.get("notes"),
            sale_date=group_patch.get("sale_date"),
        )
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to create multi-item sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"saleGroup": _group_payload(group)}), 201


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id, g.user_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.put("/<int:sale_id>")
@require_auth
def update_sale_route(sale_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Sale, payload=payload, policy=SALE_UPDATE_POLICY, partial=True)
        enforce_rules_sale(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        sale = sales_service.update_sale(sale_id=sale_id, user_id=g.user_id, patch=patch)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to update sale %s", sale_id)
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.post("/<int:sale_id>/return")
@require_auth
def return_sale_route(sale_id: int):
    """Body: {add_to_stock: bool}. A sale can be returned once."""
    payload = request.get_json(silent=True) or {}
    add_to_stock = payload.get("add_to_stock", False)
    if not isinstance(add_to_stock, bool):
        return jsonify({"error": "add_to_stock must be a boolean"}), 400

    try:
        sale, restored = sales_service.return_sale(
            sale_id=sale_id, user_id=g.user_id, add_to_stock=add_to_stock
        )
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to return sale %s", sale_id)
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "sale": sale.to_dict(),
        "stockRestored": restored,
        "message": "Sale returned successfully",
    }), 200


@sales_bp.delete("/<int:sale_id>")
@require_auth
def delete_sale_route(sale_id: int):
    try:
        sales_service.delete_sale(sale_id=sale_id, user_id=g.user_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"message": "Sale deleted successfully"}), 200


@sales_bp.put("/groups/<int:group_id>")
@require_auth
def update_group_route(group_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=SaleGroup, payload=payload, policy=GROUP_POLICY, partial=True)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        group = sales_service.update_sale_group(group_id=group_id, user_id=g.user_id, patch=patch)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"saleGroup": _group_payload(group)}), 200


@sales_bp.delete("/groups/<int:group_id>")
@require_auth
def delete_group_route(group_id: int):
    try:
        sales_service.delete_sale_group(group_id=group_id, user_id=g.user_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"message": "Sale group deleted successfully"}), 200
