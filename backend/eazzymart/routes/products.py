# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/eazzymart/routes/products.py
"""
Product catalog routes.

Reads are public (the storefront lists products without logging in).
Writes require the admin role. Stock is not writable here: it moves only
through orders and stock entries (see routes/inventory.py).
"""
from flask import Blueprint, request, g

from ..decorators import require_auth, require_role, optional_auth, current_user
from ..errors import DomainError, ValidationError
from ..models import Product
from ..models.auth import ROLE_ADMIN
from ..responses import ok, domain_error, server_error
from ..services import products_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    price_to_cents,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "description", "category", "image_url", "price_cents", "is_active"}),
    required_on_create=frozenset({"name", "price_cents"}),
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _normalize_price(payload: dict) -> dict:
    """Accept a decimal "price" alongside/in place of integer price_cents."""
    payload = dict(payload)
    if "price" in payload:
        price = payload.pop("price")
        payload.setdefault("price_cents", price_to_cents(price))
    return payload


@products_bp.get("")
@optional_auth
def list_products():
    """
    List products with optional pagination.

    Query params:
    - category: exact category filter
    - q: name search
    - page / per_page: pagination (per_page max 100)
    - include_inactive: staff only
    """
    user = current_user()
    include_inactive = (
        request.args.get("include_inactive", "").lower() in {"1", "true", "yes"}
        and user is not None
        and user.is_staff
    )
    result = products_service.list_products(
        include_inactive=include_inactive,
        category=request.args.get("category"),
        search=request.args.get("q"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return ok("OK", **result)


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    try:
        return ok("OK", product=products_service.get_product(product_id).to_dict())
    except DomainError as e:
        return domain_error(e)


@products_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_product():
    """
    Create a product.

    Request body:
    {
        "name": "Rice 5kg",
        "price": 289.50,            (or "price_cents": 28950)
        "category": "Grains",
        "description": "...",
        "image_url": "...",
        "stock": 20                 (optional initial stock, logged as a stock entry)
    }
    """
    try:
        payload = _normalize_price(request.get_json(silent=True) or {})
        initial_stock = payload.pop("stock", 0)
        if isinstance(initial_stock, bool) or not isinstance(initial_stock, int) or initial_stock < 0:
            raise ValidationError("stock must be a non-negative integer")

        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)

        product = products_service.create_product(
            patch=patch,
            initial_stock=initial_stock,
            user_id=g.current_user.id,
        )
        return ok("Product created", 201, product=product.to_dict())
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to create product")


@products_bp.put("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_product(product_id: int):
    try:
        payload = _normalize_price(request.get_json(silent=True) or {})
        if "stock" in payload:
            raise ValidationError("stock cannot be edited directly; use a stock entry")

        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)

        product = products_service.update_product(product_id, patch=patch)
        return ok("Product updated", product=product.to_dict())
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to update product")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_product(product_id: int):
    try:
        products_service.delete_product(product_id)
        return ok("Product deleted")
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to delete product")
