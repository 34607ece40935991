from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

# Ceiling on a single line quantity; keeps typos like 1e6 out of the ledger
MAX_LINE_QUANTITY = 100_000


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """Business rule conflict (duplicate email, last admin, ...)."""


class NotFoundError(LookupError):
    """404-level: the referenced record does not exist."""


@dataclass(frozen=True)
class LineItem:
    product_id: int
    quantity: int

    def to_dict(self) -> dict:
        return {"product_id": self.product_id, "quantity": self.quantity}


def get_field(data: Mapping[str, Any], *names: str, default: Any = None) -> Any:
    """
    Return the first present, non-None value among `names`.

    The browser client sends camelCase keys (branchId); CLI and tests tend to
    send snake_case. Both are accepted.
    """
    for name in names:
        value = data.get(name)
        if value is not None:
            return value
    return default


def coerce_int(value: Any, field: str) -> int:
    """Strict integer coercion: rejects floats, bools, decimals and scientific notation."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_positive_int(value: Any, field: str, *, maximum: int | None = None) -> int:
    number = coerce_int(value, field)
    if number <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} must be at most {maximum}")
    return number


def coerce_cents(value: Any, field: str) -> int:
    cents = coerce_int(value, field)
    if cents < 0:
        raise ValidationError(f"{field} cannot be negative")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_PRICE_CENTS} cents")
    return cents


def parse_line_items(raw: Any, *, field: str = "items") -> list[LineItem]:
    """
    Parse a list of {productId|product_id, quantity} objects.

    Every line must carry a product id and a positive integer quantity; a
    product may appear only once. Raises ValidationError otherwise.
    """
    if not isinstance(raw, list) or not raw:
        raise ValidationError(f"{field} must be a non-empty list")

    lines: list[LineItem] = []
    seen: set[int] = set()
    for index, entry in enumerate(raw):
        if not isinstance(entry, Mapping):
            raise ValidationError(f"{field}[{index}] must be an object")

        raw_product_id = get_field(entry, "productId", "product_id")
        if raw_product_id is None:
            raise ValidationError(f"{field}[{index}] is missing a product id")
        product_id = coerce_int(raw_product_id, f"{field}[{index}].product_id")

        raw_quantity = entry.get("quantity")
        if raw_quantity is None:
            raise ValidationError(f"{field}[{index}] is missing a quantity")
        quantity = coerce_positive_int(raw_quantity, f"{field}[{index}].quantity", maximum=MAX_LINE_QUANTITY)

        if product_id in seen:
            raise ValidationError(f"Product {product_id} appears more than once in {field}")
        seen.add(product_id)
        lines.append(LineItem(product_id=product_id, quantity=quantity))

    return lines


def require_fields(data: Mapping[str, Any], fields: Iterable[str]) -> None:
    missing = [name for name in fields if data.get(name) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")
