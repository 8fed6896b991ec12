from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .models import GST_RATES, ROLES
from .models.inventory import TRANSACTION_PURCHASE
from .models.sales import REFUND_METHODS, SALE_PAYMENT_METHODS, TENDER_METHODS
from .money import MAX_AMOUNT_CENTS, to_cents, to_decimal

PHONE_RE = re.compile(r"^[0-9+\-() ]+$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "barcode", "name", "description", "category_id",
        "purchase_price_cents", "selling_price_cents", "gst_rate", "unit",
    },
    required_on_create={"sku", "name", "category_id", "purchase_price_cents", "selling_price_cents", "gst_rate"},
)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "parent_id"},
    required_on_create={"name"},
)

# API amount field -> cents column
PRODUCT_AMOUNT_FIELDS = {
    "purchase_price": "purchase_price_cents",
    "selling_price": "selling_price_cents",
}


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, name: str, *, minimum: int | None = None) -> int:
    """Strict integer: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{name} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{name} must be >= {minimum}")
    return result


def coerce_amount_cents(value: Any, name: str) -> int:
    """Non-negative decimal amount -> cents."""
    if value is None:
        raise ValidationError(f"{name} is required")
    try:
        cents = to_cents(value)
    except ValueError:
        raise ValidationError(f"{name} must be a number")
    if cents < 0:
        raise ValidationError(f"{name} must be >= 0")
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{name} cannot exceed {MAX_AMOUNT_CENTS / 100:,.2f}")
    return cents


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Optional strings: blank means "not set"
        if isinstance(col.type, (String, Text)) and col.nullable and val == "":
            val = None

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def amounts_to_cents(payload: dict, mapping: dict[str, str]) -> dict:
    """Copy of payload with decimal amount fields renamed to their cents columns."""
    out = dict(payload)
    for api_key, column_key in mapping.items():
        if api_key in out:
            raw = out.pop(api_key)
            out[column_key] = None if raw is None else coerce_amount_cents(raw, api_key)
    return out


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "gst_rate" in patch and patch["gst_rate"] not in GST_RATES:
        raise ValidationError(f"gst_rate must be one of {', '.join(str(r) for r in GST_RATES)}")


def _optional_str(payload: dict, key: str, max_length: int) -> str | None:
    raw = payload.get(key)
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError(f"{key} must be a string")
    val = raw.strip()
    if not val:
        return None
    if len(val) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return val


def _required_list(payload: dict, key: str) -> list:
    items = payload.get(key)
    if not isinstance(items, list) or not items:
        raise ValidationError(f"{key} must be a non-empty list")
    return items


def _require_dict(payload: Any) -> dict:
    if payload is None or not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SaleItemRequest:
    product_id: int
    quantity: int
    unit_price_cents: int | None = None
    discount_percentage: Decimal = Decimal("0")


@dataclass(frozen=True)
class TenderRequest:
    method: str
    amount_cents: int
    reference_number: str | None = None


@dataclass(frozen=True)
class SaleRequest:
    items: list[SaleItemRequest]
    payment_method: str
    payment_details: list[TenderRequest] = field(default_factory=list)
    customer_name: str | None = None
    customer_phone: str | None = None
    customer_email: str | None = None
    discount_cents: int = 0
    notes: str | None = None
    status: str = "completed"


def _parse_sale_item(raw: Any, index: int) -> SaleItemRequest:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object")
    if "product_id" not in raw:
        raise ValidationError(f"items[{index}].product_id is required")
    if "quantity" not in raw:
        raise ValidationError(f"items[{index}].quantity is required")

    product_id = coerce_int(raw["product_id"], f"items[{index}].product_id", minimum=1)
    quantity = coerce_int(raw["quantity"], f"items[{index}].quantity", minimum=1)

    unit_price_cents = None
    if raw.get("unit_price") is not None:
        unit_price_cents = coerce_amount_cents(raw["unit_price"], f"items[{index}].unit_price")

    discount = Decimal("0")
    if raw.get("discount_percentage") is not None:
        try:
            discount = to_decimal(raw["discount_percentage"])
        except ValueError:
            raise ValidationError(f"items[{index}].discount_percentage must be a number")
        if not discount.is_finite() or discount < 0 or discount > 100:
            raise ValidationError(f"items[{index}].discount_percentage must be between 0 and 100")

    return SaleItemRequest(
        product_id=product_id,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        discount_percentage=discount,
    )


def _parse_tender(raw: Any, index: int) -> TenderRequest:
    if not isinstance(raw, dict):
        raise ValidationError(f"payment_details[{index}] must be an object")
    method = raw.get("method")
    if method not in TENDER_METHODS:
        raise ValidationError(f"payment_details[{index}].method must be one of {', '.join(TENDER_METHODS)}")
    amount_cents = coerce_amount_cents(raw.get("amount"), f"payment_details[{index}].amount")
    reference = _optional_str(raw, "reference_number", 100)
    return TenderRequest(method=method, amount_cents=amount_cents, reference_number=reference)


def validate_sale_request(payload: Any) -> SaleRequest:
    payload = _require_dict(payload)

    items = [_parse_sale_item(raw, i) for i, raw in enumerate(_required_list(payload, "items"))]

    payment_method = payload.get("payment_method")
    if payment_method not in SALE_PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of {', '.join(SALE_PAYMENT_METHODS)}")

    raw_tenders = payload.get("payment_details") or []
    if not isinstance(raw_tenders, list):
        raise ValidationError("payment_details must be a list")
    tenders = [_parse_tender(raw, i) for i, raw in enumerate(raw_tenders)]

    if payment_method == "mixed" and len(tenders) < 2:
        raise ValidationError("Mixed payment requires at least two payment_details entries")

    phone = _optional_str(payload, "customer_phone", 20)
    if phone and not PHONE_RE.match(phone):
        raise ValidationError("customer_phone may only contain digits, spaces and + - ( )")

    email = _optional_str(payload, "customer_email", 255)
    if email and not EMAIL_RE.match(email):
        raise ValidationError("customer_email must be a valid email address")

    discount_cents = 0
    if payload.get("discount_amount") is not None:
        discount_cents = coerce_amount_cents(payload["discount_amount"], "discount_amount")

    status = payload.get("status") or "completed"
    if status not in ("completed", "pending"):
        raise ValidationError("status must be 'completed' or 'pending'")

    return SaleRequest(
        items=items,
        payment_method=payment_method,
        payment_details=tenders,
        customer_name=_optional_str(payload, "customer_name", 100),
        customer_phone=phone,
        customer_email=email,
        discount_cents=discount_cents,
        notes=_optional_str(payload, "notes", 500),
        status=status,
    )


@dataclass(frozen=True)
class RefundItemRequest:
    sale_item_id: int
    quantity: int
    reason: str | None = None


@dataclass(frozen=True)
class RefundRequest:
    items: list[RefundItemRequest]
    refund_method: str


def validate_refund_request(payload: Any) -> RefundRequest:
    payload = _require_dict(payload)

    items = []
    for i, raw in enumerate(_required_list(payload, "items")):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{i}] must be an object")
        if "sale_item_id" not in raw or "quantity" not in raw:
            raise ValidationError(f"items[{i}] requires sale_item_id and quantity")
        items.append(RefundItemRequest(
            sale_item_id=coerce_int(raw["sale_item_id"], f"items[{i}].sale_item_id", minimum=1),
            quantity=coerce_int(raw["quantity"], f"items[{i}].quantity", minimum=1),
            reason=_optional_str(raw, "reason", 200),
        ))

    refund_method = payload.get("refund_method")
    if refund_method not in REFUND_METHODS:
        raise ValidationError(f"refund_method must be one of {', '.join(REFUND_METHODS)}")

    return RefundRequest(items=items, refund_method=refund_method)


def validate_cancel_reason(payload: Any) -> str:
    payload = payload if isinstance(payload, dict) else {}
    return _optional_str(payload, "reason", 200) or "No reason provided"


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AdjustmentRequest:
    quantity: int
    reason: str
    type: str
    product_id: int | None = None


def _parse_adjustment(raw: Any, prefix: str = "", *, with_product: bool = False) -> AdjustmentRequest:
    if not isinstance(raw, dict):
        raise ValidationError(f"{prefix or 'payload'} must be an object")

    product_id = None
    if with_product:
        if "product_id" not in raw:
            raise ValidationError(f"{prefix}product_id is required")
        product_id = coerce_int(raw["product_id"], f"{prefix}product_id", minimum=1)

    if "quantity" not in raw:
        raise ValidationError(f"{prefix}quantity is required")
    quantity = coerce_int(raw["quantity"], f"{prefix}quantity", minimum=0)

    reason = _optional_str(raw, "reason", 200)
    if not reason:
        raise ValidationError(f"{prefix}reason is required")

    # Unknown types are rejected by the inventory service with INVALID_TYPE
    adj_type = raw.get("type")
    if not isinstance(adj_type, str) or not adj_type.strip():
        raise ValidationError(f"{prefix}type is required")

    return AdjustmentRequest(quantity=quantity, reason=reason, type=adj_type.strip(), product_id=product_id)


def validate_adjustment(payload: Any) -> AdjustmentRequest:
    return _parse_adjustment(_require_dict(payload))


def validate_bulk_adjustments(payload: Any) -> list[AdjustmentRequest]:
    payload = _require_dict(payload)
    return [
        _parse_adjustment(raw, f"adjustments[{i}].", with_product=True)
        for i, raw in enumerate(_required_list(payload, "adjustments"))
    ]


def validate_thresholds(payload: Any) -> dict:
    payload = _require_dict(payload)
    patch = {}
    if "minimum_threshold" in payload:
        patch["minimum_threshold"] = coerce_int(payload["minimum_threshold"], "minimum_threshold", minimum=0)
    if "maximum_capacity" in payload:
        raw = payload["maximum_capacity"]
        patch["maximum_capacity"] = None if raw is None else coerce_int(raw, "maximum_capacity", minimum=0)
    if not patch:
        raise ValidationError("No valid fields to update")
    return patch


@dataclass(frozen=True)
class ReceiveRequest:
    quantity: int
    reference_id: int | None = None
    reason: str | None = None
    transaction_type: str = TRANSACTION_PURCHASE


def validate_receive(payload: Any) -> ReceiveRequest:
    payload = _require_dict(payload)
    if "quantity" not in payload:
        raise ValidationError("quantity is required")
    reference_id = None
    if payload.get("reference_id") is not None:
        reference_id = coerce_int(payload["reference_id"], "reference_id", minimum=1)
    return ReceiveRequest(
        quantity=coerce_int(payload["quantity"], "quantity", minimum=1),
        reference_id=reference_id,
        reason=_optional_str(payload, "reason", 200),
    )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def validate_user_registration(payload: Any) -> dict:
    payload = _require_dict(payload)

    username = payload.get("username")
    if not isinstance(username, str) or not 3 <= len(username.strip()) <= 50:
        raise ValidationError("username must be 3-50 characters")

    email = payload.get("email")
    if not isinstance(email, str) or not EMAIL_RE.match(email.strip()):
        raise ValidationError("email must be a valid email address")

    full_name = payload.get("full_name")
    if not isinstance(full_name, str) or not 2 <= len(full_name.strip()) <= 100:
        raise ValidationError("full_name must be 2-100 characters")

    role = payload.get("role")
    if role not in ROLES:
        raise ValidationError(f"role must be one of {', '.join(ROLES)}")

    password = payload.get("password")
    if not isinstance(password, str) or not password:
        raise ValidationError("password is required")

    return {
        "username": username.strip(),
        "email": email.strip().lower(),
        "full_name": full_name.strip(),
        "role": role,
        "password": password,
    }
