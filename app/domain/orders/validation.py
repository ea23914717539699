from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from email_validator import EmailNotValidError, validate_email

from app.domain.money import MAX_CENTS, AmountOverflowError, to_amount, to_cents

MAX_TEXT_LENGTH = 255
MIN_CUSTOMER_NAME_LENGTH = 2
# order_items.quantity is a 32-bit column.
MAX_QUANTITY = 2**31 - 1


@dataclass(frozen=True)
class ItemInput:
    product_name: str
    quantity: int
    unit_price: Decimal


def check_customer_name(value: Any) -> tuple[str | None, str | None]:
    """Return ``(normalized, error)``; exactly one of them is set."""
    if not isinstance(value, str):
        return None, "Customer name must be a string"
    name = value.strip()
    if len(name) < MIN_CUSTOMER_NAME_LENGTH or len(name) > MAX_TEXT_LENGTH:
        return None, f"Customer name must be between {MIN_CUSTOMER_NAME_LENGTH} and {MAX_TEXT_LENGTH} characters"
    return name, None


def check_customer_email(value: Any) -> tuple[str | None, str | None]:
    if not isinstance(value, str) or not value.strip():
        return None, "Customer email is required"
    if len(value) > MAX_TEXT_LENGTH:
        return None, f"Customer email must be at most {MAX_TEXT_LENGTH} characters"
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return None, "Invalid email format"
    return value, None


def check_item(value: Any, prefix: str) -> tuple[ItemInput | None, dict[str, str]]:
    if not isinstance(value, dict):
        return None, {prefix: "Item must be an object"}

    errors: dict[str, str] = {}

    product_name = value.get("product_name")
    if not isinstance(product_name, str) or not product_name.strip():
        errors[f"{prefix}.product_name"] = "Product name is required"
    elif len(product_name.strip()) > MAX_TEXT_LENGTH:
        errors[f"{prefix}.product_name"] = f"Product name must be at most {MAX_TEXT_LENGTH} characters"

    quantity = value.get("quantity")
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        errors[f"{prefix}.quantity"] = "Quantity must be an integer"
    elif quantity < 1:
        errors[f"{prefix}.quantity"] = "Quantity must be greater than 0"
    elif quantity > MAX_QUANTITY:
        errors[f"{prefix}.quantity"] = f"Quantity must be at most {MAX_QUANTITY}"

    unit_price: Decimal | None = None
    raw_price = value.get("price")
    if raw_price is None:
        errors[f"{prefix}.price"] = "Price is required"
    else:
        try:
            unit_price = to_amount(raw_price)
        except AmountOverflowError:
            errors[f"{prefix}.price"] = "Price is too large"
        except ValueError:
            errors[f"{prefix}.price"] = "Price must be a number"
        else:
            if unit_price <= 0:
                errors[f"{prefix}.price"] = "Price must be greater than 0"
            elif to_cents(unit_price) > MAX_CENTS:
                errors[f"{prefix}.price"] = "Price is too large"

    if errors:
        return None, errors
    if to_cents(unit_price) * quantity > MAX_CENTS:
        return None, {f"{prefix}.quantity": "Line total is too large"}
    return ItemInput(product_name=product_name.strip(), quantity=quantity, unit_price=unit_price), {}


def check_items(value: Any, field: str = "items") -> tuple[list[ItemInput], dict[str, str]]:
    if not isinstance(value, list) or not value:
        return [], {field: "Items must be a non-empty array"}

    items: list[ItemInput] = []
    errors: dict[str, str] = {}
    for index, raw in enumerate(value):
        item, item_errors = check_item(raw, f"{field}[{index}]")
        if item_errors:
            errors.update(item_errors)
        else:
            items.append(item)
    if not errors and sum(to_cents(item.unit_price) * item.quantity for item in items) > MAX_CENTS:
        errors[field] = "Order total is too large"
    return items, errors
