# Overview: Flask API routes for item operations; parses input and returns JSON responses.

"""
Item routes.

Every route requires authentication and is scoped to g.user_id; an item
owned by another user answers 404 exactly like a missing one.
"""
from flask import Blueprint, request, g, current_app

from ..models import Item
from ..services import items_service
from ..services.items_service import DuplicateItemError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_item,
    ValidationError,
    NotFoundError,
    ConflictError,
)
from ..decorators import require_auth

ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
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
    },
    required_on_create={"name"},
    ignored_fields={"skipDuplicateCheck"},
)

items_bp = Blueprint("items", __name__, url_prefix="/api/items")


@items_bp.get("")
@require_auth
def list_items_route():
    items = items_service.list_items(g.user_id)
    return {"items": [i.to_dict() for i in items]}, 200


@items_bp.get("/search")
@require_auth
def search_items_route():
    try:
        items = items_service.search_items(g.user_id, request.args.get("q", ""))
    except ValidationError as e:
        return {"error": str(e)}, 400
    return {"items": [i.to_dict() for i in items]}, 200


@items_bp.get("/category/<category>")
@require_auth
def items_by_category_route(category: str):
    items = items_service.list_items_by_category(g.user_id, category)
    return {"items": [i.to_dict() for i in items]}, 200


@items_bp.get("/<int:item_id>")
@require_auth
def get_item_route(item_id: int):
    try:
        item = items_service.get_item(item_id, g.user_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"item": item.to_dict()}, 200


@items_bp.post("")
@require_auth
def create_item_route():
    """
    Create an item.

    409 with {error, duplicate, message} when an item with the same name is
    already in the same status and skipDuplicateCheck is not set.
    """
    payload = request.get_json(silent=True) or {}
    skip_duplicate_check = payload.get("skipDuplicateCheck", False)
    if not isinstance(skip_duplicate_check, bool):
        return {"error": "skipDuplicateCheck must be a boolean"}, 400

    try:
        patch = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=False)
        enforce_rules_item(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        item = items_service.create_item(
            user_id=g.user_id,
            patch=patch,
            default_currency=current_app.config.get("DEFAULT_CURRENCY", "USD"),
            skip_duplicate_check=skip_duplicate_check,
        )
    except DuplicateItemError as e:
        return {
            "error": "Duplicate item found",
            "duplicate": e.duplicate.to_dict(),
            "message": "An item with this name already exists in this status",
        }, 409
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to create item")
        return {"error": "Internal server error"}, 500

    return {"item": item.to_dict()}, 201


@items_bp.put("/<int:item_id>")
@require_auth
def update_item_route(item_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=True)
        enforce_rules_item(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        item = items_service.update_item(item_id=item_id, user_id=g.user_id, patch=patch)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to update item %s", item_id)
        return {"error": "Internal server error"}, 500

    return {"item": item.to_dict()}, 200


@items_bp.delete("/<int:item_id>")
@require_auth
def delete_item_route(item_id: int):
    try:
        items_service.delete_item(item_id=item_id, user_id=g.user_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to delete item %s", item_id)
        return {"error": "Internal server error"}, 500

    return {"message": "Item deleted successfully"}, 200


@items_bp.post("/<int:item_id>/move")
@require_auth
def move_item_route(item_id: int):
    """
    Move units to another status.

    Body: {category: str, quantity?: int}. Omitting quantity moves everything.
    """
    payload = request.get_json(silent=True) or {}
    category = payload.get("category")
    quantity = payload.get("quantity")

    if not isinstance(category, str) or not category.strip():
        return {"error": "category is required"}, 400
    if quantity is not None and (isinstance(quantity, bool) or not isinstance(quantity, int)):
        return {"error": "quantity must be an integer"}, 400

    try:
        result = items_service.move_item(
            item_id=item_id,
            user_id=g.user_id,
            target_category=category.strip(),
            quantity=quantity,
        )
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except (ValidationError, ConflictError) as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to move item %s", item_id)
        return {"error": "Internal server error"}, 500

    return result, 200
