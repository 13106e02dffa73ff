# Overview: Flask API routes for the item name registry.

from flask import Blueprint, request, g, current_app

from ..services import item_names_service
from ..validation import ValidationError, NotFoundError, ConflictError
from ..decorators import require_auth

item_names_bp = Blueprint("item_names", __name__, url_prefix="/api/item-names")


@item_names_bp.get("")
@require_auth
def list_item_names_route():
    names = item_names_service.list_names(g.user_id)
    return {"names": [n.to_dict() for n in names]}, 200


@item_names_bp.put("/<int:name_id>")
@require_auth
def rename_item_name_route(name_id: int):
    """Rename the entry and every item that carries the old name."""
    payload = request.get_json(silent=True) or {}
    new_name = payload.get("name")
    if not isinstance(new_name, str):
        return {"error": "name is required"}, 400

    try:
        entry, renamed = item_names_service.rename(name_id, g.user_id, new_name)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to rename item name %s", name_id)
        return {"error": "Internal server error"}, 500

    return {"name": entry.to_dict(), "itemsUpdated": renamed}, 200


@item_names_bp.delete("/<int:name_id>")
@require_auth
def delete_item_name_route(name_id: int):
    try:
        item_names_service.delete_name(name_id, g.user_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"message": "Item name deleted successfully"}, 200
