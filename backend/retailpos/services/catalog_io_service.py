# Overview: Product catalog export and bulk import (CSV / XLSX rows in, CSV out).

from __future__ import annotations

import csv
import io
import logging

from ..errors import PosError, ValidationError
from ..extensions import db
from ..models import Product
from ..money import cents_to_amount
from .products_service import create_product, parse_product_payload

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "Name", "Description", "SKU", "Barcode", "Category",
    "Purchase Price", "Selling Price", "GST Rate", "Unit",
    "Current Stock", "Min Threshold", "Max Capacity",
]

# Columns read from an import file; anything else is ignored
IMPORT_FIELDS = (
    "name", "description", "sku", "barcode", "category_id",
    "purchase_price", "selling_price", "gst_rate", "unit",
    "minimum_threshold", "maximum_capacity", "initial_stock",
)


def export_products_csv() -> str:
    products = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True))
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_COLUMNS)
    for p in products:
        inventory = p.inventory
        writer.writerow([
            p.name,
            p.description or "",
            p.sku,
            p.barcode or "",
            p.category.name if p.category else "",
            f"{cents_to_amount(p.purchase_price_cents):.2f}",
            f"{cents_to_amount(p.selling_price_cents):.2f}",
            p.gst_rate,
            p.unit,
            inventory.current_quantity if inventory else 0,
            inventory.minimum_threshold if inventory else 0,
            inventory.maximum_capacity if inventory and inventory.maximum_capacity is not None else "",
        ])
    return output.getvalue()


def read_upload_rows(filename: str, stream) -> list[dict]:
    """Parse an uploaded .csv or .xlsx file into a list of row dicts."""
    ext = (filename or "").rsplit(".", 1)[-1].lower()
    if ext == "csv":
        try:
            text = stream.read().decode("utf-8-sig")
        except UnicodeDecodeError:
            raise ValidationError("CSV file must be UTF-8 encoded", code="INVALID_CSV")
        return list(csv.DictReader(io.StringIO(text)))
    if ext in {"xlsx", "xlsm"}:
        from openpyxl import load_workbook

        wb = load_workbook(stream, read_only=True, data_only=True)
        data = list(wb.active.values)
        if not data:
            return []
        headers = [str(h).strip() if h is not None else "" for h in data[0]]
        return [
            {headers[i]: row[i] for i in range(min(len(headers), len(row)))}
            for row in data[1:]
        ]
    raise ValidationError("Unsupported file format; upload .csv or .xlsx", code="INVALID_CSV")


def _row_payload(row: dict) -> dict:
    payload = {}
    for key in IMPORT_FIELDS:
        value = row.get(key)
        if isinstance(value, str):
            value = value.strip()
        if value in (None, ""):
            continue
        payload[key] = value
    # Spreadsheet cells come through as text or floats; ids and counts are integers
    for key in ("category_id", "gst_rate", "minimum_threshold", "maximum_capacity", "initial_stock"):
        value = payload.get(key)
        if isinstance(value, float) and value.is_integer():
            payload[key] = int(value)
    return payload


def import_products(rows: list[dict], *, user_id: int | None) -> dict:
    """
    Create one product per row. Bad rows and duplicates are skipped and
    reported with their spreadsheet row number (header is row 1).
    """
    created = 0
    errors = []

    for index, row in enumerate(rows):
        row_number = index + 2
        try:
            patch, inventory_settings = parse_product_payload(_row_payload(row), partial=False)
            create_product(patch, inventory_settings, user_id=user_id)
            created += 1
        except PosError as exc:
            errors.append({"row": row_number, "error": exc.message, "code": exc.code})

    logger.info("Product import: %d rows, %d created, %d rejected", len(rows), created, len(errors))

    body = {
        "summary": {
            "total_rows": len(rows),
            "success_count": created,
            "error_count": len(errors),
        }
    }
    if errors:
        body["errors"] = errors
    return body
