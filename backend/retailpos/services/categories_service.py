# Overview: Service-layer operations for categories; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import func

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, Inventory, Product


def _product_counts() -> dict[int, dict]:
    rows = (
        db.session.query(
            Product.category_id,
            func.count(Product.id),
            func.coalesce(func.sum(db.case((Inventory.current_quantity > 0, 1), else_=0)), 0),
            func.coalesce(func.sum(Inventory.current_quantity), 0),
        )
        .outerjoin(Inventory, Inventory.product_id == Product.id)
        .filter(Product.is_active.is_(True))
        .group_by(Product.category_id)
        .all()
    )
    return {
        category_id: {
            "product_count": int(count),
            "products_in_stock": int(in_stock),
            "total_items": int(items),
        }
        for category_id, count, in_stock, items in rows
    }


def _get_category(category_id: int, *, active_only: bool = True) -> Category:
    query = db.session.query(Category).filter_by(id=category_id)
    if active_only:
        query = query.filter(Category.is_active.is_(True))
    category = query.first()
    if category is None:
        raise NotFoundError("Category not found", code="CATEGORY_NOT_FOUND")
    return category


def _ensure_unique_name(name: str, parent_id: int | None, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Category.id).filter(
        func.lower(Category.name) == name.lower(),
        Category.is_active.is_(True),
    )
    if parent_id is None:
        query = query.filter(Category.parent_id.is_(None))
    else:
        query = query.filter(Category.parent_id == parent_id)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first() is not None:
        raise ConflictError("Category with this name already exists at this level", code="DUPLICATE_CATEGORY")


def _ensure_parent(parent_id: int | None) -> None:
    if parent_id is None:
        return
    exists = db.session.query(Category.id).filter_by(id=parent_id, is_active=True).first()
    if exists is None:
        raise ValidationError("Parent category not found", code="PARENT_NOT_FOUND")


def descendant_ids(category_id: int) -> set[int]:
    """Ids of every active category below category_id."""
    found: set[int] = set()
    frontier = [category_id]
    while frontier:
        children = [
            cid for (cid,) in db.session.query(Category.id)
            .filter(Category.parent_id.in_(frontier), Category.is_active.is_(True))
            .all()
            if cid not in found
        ]
        found.update(children)
        frontier = children
    return found


def list_categories(*, include_inactive: bool = False, with_stats: bool = False) -> dict:
    query = db.session.query(Category)
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    categories = query.order_by(Category.name.asc(), Category.id.asc()).all()

    stats = _product_counts() if with_stats else {}
    rows = []
    for category in categories:
        row = category.to_dict()
        if with_stats:
            row["stats"] = stats.get(category.id, {"product_count": 0, "products_in_stock": 0, "total_items": 0})
        rows.append(row)
    return {"categories": rows}


def get_category(category_id: int) -> dict:
    category = _get_category(category_id, active_only=False)
    row = category.to_dict()
    row["product_count"] = _product_counts().get(category.id, {}).get("product_count", 0)
    row["subcategories"] = [
        c.to_dict() for c in sorted(category.children, key=lambda c: c.name) if c.is_active
    ]
    return {"category": row}


def create_category(patch: dict) -> dict:
    parent_id = patch.get("parent_id")
    _ensure_parent(parent_id)
    _ensure_unique_name(patch["name"], parent_id)

    category = Category(**patch)
    db.session.add(category)
    db.session.commit()
    return category.to_dict()


def update_category(category_id: int, patch: dict) -> dict:
    category = _get_category(category_id)

    if "parent_id" in patch and patch["parent_id"] is not None:
        parent_id = patch["parent_id"]
        if parent_id == category.id:
            raise ValidationError("Category cannot be its own parent", code="CIRCULAR_REFERENCE")
        _ensure_parent(parent_id)
        if parent_id in descendant_ids(category.id):
            raise ValidationError("Cannot create circular category hierarchy", code="CIRCULAR_HIERARCHY")

    name = patch.get("name", category.name)
    parent_id = patch["parent_id"] if "parent_id" in patch else category.parent_id
    _ensure_unique_name(name, parent_id, exclude_id=category.id)

    for key, value in patch.items():
        setattr(category, key, value)
    db.session.commit()
    return category.to_dict()


def delete_category(category_id: int) -> None:
    """Soft delete; refuses while active products or subcategories exist."""
    category = _get_category(category_id)

    products = db.session.query(Product.id).filter_by(category_id=category.id, is_active=True).count()
    if products:
        raise ValidationError(
            f"Cannot delete category with {products} active product(s)",
            code="CATEGORY_HAS_PRODUCTS",
        )

    children = db.session.query(Category.id).filter_by(parent_id=category.id, is_active=True).count()
    if children:
        raise ValidationError(
            f"Cannot delete category with {children} active subcategor{'y' if children == 1 else 'ies'}",
            code="CATEGORY_HAS_SUBCATEGORIES",
        )

    category.is_active = False
    db.session.commit()


def category_hierarchy() -> dict:
    categories = (
        db.session.query(Category)
        .filter(Category.is_active.is_(True))
        .order_by(Category.name.asc(), Category.id.asc())
        .all()
    )
    counts = _product_counts()

    nodes = {}
    for category in categories:
        node = category.to_dict()
        node["product_count"] = counts.get(category.id, {}).get("product_count", 0)
        node["children"] = []
        nodes[category.id] = node

    roots = []
    for category in categories:
        node = nodes[category.id]
        parent = nodes.get(category.parent_id)
        if parent is None:
            roots.append(node)
        else:
            parent["children"].append(node)

    return {"hierarchy": roots}
