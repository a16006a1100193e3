# Overview: Flask API routes for inventory operations; restocking and stock reports.

from flask import Blueprint, request, g

from ..decorators import require_auth, require_role
from ..errors import DomainError, ValidationError
from ..models.auth import STAFF_ROLES
from ..responses import ok, domain_error, server_error
from ..services import inventory_service
from ..time_utils import parse_iso_date


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/stock-entries")
@require_auth
@require_role(*STAFF_ROLES)
def add_stock_entry_route():
    """
    Restock a product.

    Request body:
    {
        "product_id": 1,
        "quantity": 24,
        "note": "Supplier delivery"   (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        product_id = data.get("product_id")
        quantity = data.get("quantity", data.get("quantity_added"))
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError("product_id must be an integer")

        entry = inventory_service.add_stock_entry(
            product_id,
            quantity,
            user_id=g.current_user.id,
            note=data.get("note"),
        )
        return ok(
            "Stock added",
            201,
            entry=entry.to_dict(),
            stock=entry.product.stock,
        )
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to add stock entry")


@inventory_bp.get("/stock-report")
@require_auth
@require_role(*STAFF_ROLES)
def stock_report_route():
    """Stock entries for ?date=YYYY-MM-DD (UTC, defaults to today)."""
    try:
        try:
            day = parse_iso_date(request.args.get("date"))
        except ValueError:
            raise ValidationError("date must be YYYY-MM-DD") from None
        return ok("OK", **inventory_service.stock_report(day))
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to build stock report")


@inventory_bp.get("/low-stock")
@require_auth
@require_role(*STAFF_ROLES)
def low_stock_route():
    threshold = request.args.get("threshold", default=5, type=int)
    products = inventory_service.list_low_stock(threshold)
    return ok("OK", items=[p.to_dict() for p in products], count=len(products), threshold=threshold)
