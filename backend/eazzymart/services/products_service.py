# backend/eazzymart/services/products_service.py
"""
Products Service

Catalog CRUD. Stock is only set once, at creation (recorded as the first
StockEntry); afterwards it moves exclusively through the inventory ledger.
"""
from __future__ import annotations

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import OrderItem, Product, StockEntry
from ..time_utils import utcnow

PRODUCT_MUTABLE_FIELDS = {"name", "description", "category", "image_url", "price_cents", "is_active"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def list_products(
    *,
    include_inactive: bool = False,
    category: str | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional pagination.

    Returns a dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product)
    if not include_inactive:
        base_query = base_query.filter(Product.is_active.is_(True))
    if category:
        base_query = base_query.filter(Product.category == category)
    if search:
        base_query = base_query.filter(Product.name.ilike(f"%{search.strip()}%"))
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def create_product(*, patch: dict, initial_stock: int = 0, user_id: int | None = None) -> Product:
    """Create a product; a positive initial_stock is logged as a StockEntry."""
    now = utcnow()
    p = Product(stock=initial_stock, created_at=now, updated_at=now)
    apply_product_patch(p, patch)
    db.session.add(p)
    db.session.flush()

    if initial_stock > 0:
        db.session.add(StockEntry(
            product_id=p.id,
            quantity_added=initial_stock,
            note="Initial stock",
            created_by_user_id=user_id,
            created_at=now,
        ))

    db.session.commit()
    return p


def update_product(product_id: int, *, patch: dict) -> Product:
    p = get_product(product_id)
    apply_product_patch(p, patch)
    p.updated_at = utcnow()
    db.session.commit()
    return p


def delete_product(product_id: int) -> None:
    """
    Hard-delete a product that was never ordered.

    Ordered products are referenced by historical order lines; deactivate
    them (is_active=False) instead.
    """
    p = get_product(product_id)
    ordered = db.session.query(OrderItem.id).filter(OrderItem.product_id == p.id).first()
    if ordered is not None:
        raise ConflictError("Product has been ordered and cannot be deleted; deactivate it instead")

    db.session.query(StockEntry).filter(StockEntry.product_id == p.id).delete()
    db.session.delete(p)
    db.session.commit()
