# backend/backoffice/services/products_service.py
"""
Products Service

RULES:
- sku and barcode are unique across all rows, soft-deleted included
- price >= cost, checked on create and on every update against the
  merged (stored + patched) values
- category and unit, when set, must reference active rows
- initial stock per branch is posted as COMPLETED ADJUSTMENT movements,
  so even opening balances come from the ledger
"""
from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Branch, Category, Inventory, InventoryMovement, Product, Purchase, PurchaseDetail, Sale, SaleDetail, Unit
from ..models.inventory import MOVEMENT_ADJUSTMENT, MOVEMENT_STATUS_PENDING
from ..models.purchases import PURCHASE_STATUS_CANCELLED, PURCHASE_STATUS_PAID
from ..models.sales import SALE_STATUS_PENDING
from ..money import to_money, to_quantity
from ..validation import ConflictError, ValidationError, enforce_rules_product
from .concurrency import run_atomically
from .inventory_service import apply_movement, build_movement, set_initial_limits
from .master_data_service import ensure_unique, find_active, find_any

PRODUCT_MUTABLE_FIELDS = {
    "name", "description", "sku", "barcode", "cost", "price",
    "category_id", "unit_id", "manage_stock", "is_active", "image_url",
}


def validate_price_not_below_cost(price, cost) -> None:
    if to_money(price, "price") < to_money(cost, "cost"):
        raise ValidationError("price cannot be lower than cost")


def _check_references(patch: dict) -> None:
    if patch.get("category_id") is not None:
        find_active(Category, patch["category_id"], "Category")
    if patch.get("unit_id") is not None:
        find_active(Unit, patch["unit_id"], "Unit")


def _check_unique(patch: dict, exclude_id: int | None = None) -> None:
    for field_name in ("sku", "barcode"):
        if field_name in patch:
            ensure_unique(Product, field_name, patch[field_name], exclude_id=exclude_id, label="Product")


def _normalize_initial_stock(initial_stock) -> list[dict]:
    entries = []
    seen = set()
    for index, raw in enumerate(initial_stock or [], start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"initial_stock[{index}] must be an object")
        branch_id = raw.get("branch_id")
        if branch_id is None:
            raise ValidationError(f"initial_stock[{index}].branch_id is required")
        if branch_id in seen:
            raise ValidationError(f"Branch {branch_id} appears more than once in initial_stock")
        seen.add(branch_id)
        stock = to_quantity(raw.get("stock"), "stock")
        if stock < 0:
            raise ValidationError("stock must be >= 0")
        entries.append({
            "branch_id": branch_id,
            "stock": stock,
            "min_stock": raw.get("min_stock"),
            "max_stock": raw.get("max_stock"),
        })
    return entries


def create_product(*, patch: dict, initial_stock: list[dict] | None = None) -> Product:
    """
    Create a product from a validated patch.

    initial_stock: optional [{"branch_id", "stock", "min_stock"?, "max_stock"?}].

    Raises:
        ConflictError: sku/barcode already used
        NotFoundError: category, unit or branch missing
        ValidationError: price < cost, stock on a product without stock
            management, invalid limits
    """
    def _op():
        enforce_rules_product(patch)
        validate_price_not_below_cost(patch.get("price", 0), patch.get("cost", 0))
        _check_unique(patch)
        _check_references(patch)
        entries = _normalize_initial_stock(initial_stock)

        product = Product(**patch)
        db.session.add(product)
        db.session.flush()

        if entries and not product.manage_stock:
            raise ValidationError("initial_stock requires manage_stock")

        for entry in entries:
            find_active(Branch, entry["branch_id"], "Branch")
            if entry["stock"] > 0:
                movement = build_movement(
                    product=product,
                    branch_id=entry["branch_id"],
                    quantity=entry["stock"],
                    movement_type=MOVEMENT_ADJUSTMENT,
                    notes="Initial stock",
                )
                inventory = apply_movement(movement)
            else:
                inventory = Inventory(product_id=product.id, branch_id=entry["branch_id"], stock=entry["stock"])
                db.session.add(inventory)
            set_initial_limits(inventory, entry["min_stock"], entry["max_stock"])

        db.session.commit()
        return product

    return run_atomically(_op)


def update_product(product_id: int, patch: dict) -> Product:
    def _op():
        product = find_active(Product, product_id, "Product")
        enforce_rules_product(patch)
        validate_price_not_below_cost(patch.get("price", product.price), patch.get("cost", product.cost))
        _check_unique(patch, exclude_id=product.id)
        _check_references(patch)

        for k, v in patch.items():
            if k not in PRODUCT_MUTABLE_FIELDS:
                continue
            setattr(product, k, v)
        db.session.commit()
        return product

    return run_atomically(_op)


def _delete_blocker(product_id: int) -> str | None:
    has_stock = db.session.query(
        Inventory.active_query().filter(Inventory.product_id == product_id, Inventory.stock > 0).exists()
    ).scalar()
    if has_stock:
        return "it still has stock"
    pending = db.session.query(
        InventoryMovement.active_query().filter(
            InventoryMovement.product_id == product_id,
            InventoryMovement.status == MOVEMENT_STATUS_PENDING,
        ).exists()
    ).scalar()
    if pending:
        return "it has pending movements"
    open_sale = db.session.query(
        SaleDetail.query.join(Sale).filter(
            SaleDetail.product_id == product_id,
            Sale.deleted_at.is_(None),
            Sale.status == SALE_STATUS_PENDING,
        ).exists()
    ).scalar()
    if open_sale:
        return "it is used in pending sales"
    open_purchase = db.session.query(
        PurchaseDetail.query.join(Purchase).filter(
            PurchaseDetail.product_id == product_id,
            Purchase.deleted_at.is_(None),
            Purchase.received_at.is_(None),
            Purchase.status.notin_([PURCHASE_STATUS_CANCELLED, PURCHASE_STATUS_PAID]),
        ).exists()
    ).scalar()
    if open_purchase:
        return "it is used in open purchases"
    return None


def delete_product(product_id: int) -> Product:
    def _op():
        product = find_active(Product, product_id, "Product")
        reason = _delete_blocker(product.id)
        if reason:
            raise ConflictError(f"Cannot delete product {product.id}: {reason}")
        product.soft_delete()
        db.session.commit()
        return product

    return run_atomically(_op)


def restore_product(product_id: int) -> Product:
    def _op():
        product = find_any(Product, product_id, "Product")
        if not product.is_deleted:
            raise ConflictError(f"Product {product_id} is not deleted")
        _check_references({"category_id": product.category_id, "unit_id": product.unit_id})
        product.restore()
        db.session.commit()
        return product

    return run_atomically(_op)


def get_product(product_id: int) -> Product:
    return find_active(Product, product_id, "Product")


def search_products(term: str) -> list[Product]:
    like = f"%{(term or '').strip()}%"
    return (
        Product.active_query()
        .filter(or_(Product.name.ilike(like), Product.sku.ilike(like), Product.barcode.ilike(like)))
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )


def list_products(
    *,
    category_id: int | None = None,
    active_only: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = Product.active_query()
    if category_id is not None:
        base_query = base_query.filter(Product.category_id == category_id)
    if active_only:
        base_query = base_query.filter(Product.is_active.is_(True))
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
