"""
Per-product variant bookkeeping.

A variant is one purchasable size/price/stock combination. The product form edits
a working copy of the variant list; saving writes the whole list back, replacing
what was stored.
"""
import logging
import math
from typing import Any, Dict, Iterable, List, Optional

CURRENCY = "₹"
VARIANT_FIELDS = ("weight", "unit", "price", "stock", "isActive")

logger = logging.getLogger(__name__)


class VariantError(Exception):
    """Raised for variant edits that would break the catalog."""
    pass


def blank_variant() -> Dict[str, Any]:
    return {"weight": "", "unit": "gms", "price": "", "stock": "", "isActive": True}


def to_number(value: Any):
    """Form value to number: blank and garbage are 0, integral values stay int."""
    if value is None or isinstance(value, bool):
        return int(bool(value))
    if isinstance(value, (int, float)):
        return value
    text = str(value).strip()
    if not text:
        return 0
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        logger.warning("Non-numeric variant value %r stored as 0", value)
        return 0
    if not math.isfinite(number):
        return 0
    return int(number) if number.is_integer() else number


def is_active(variant: dict) -> bool:
    return variant.get("isActive", True) is not False


def coerce_variants(variants: Iterable[dict]) -> List[Dict[str, Any]]:
    return [
        {
            "weight": to_number(v.get("weight")),
            "unit": v.get("unit") or "gms",
            "price": to_number(v.get("price")),
            "stock": to_number(v.get("stock")),
            "isActive": is_active(v),
        }
        for v in variants
    ]


def legacy_variants(product: dict) -> List[Dict[str, Any]]:
    """Variant list for a product, upgrading the old single-price layout on the fly."""
    if isinstance(product.get("variants"), list):
        return [dict(v) for v in product["variants"]]
    return [{
        "weight": product.get("quantity", ""),
        "unit": product.get("unit") or "gms",
        "price": product.get("price", ""),
        "stock": product.get("stockCount", ""),
        "isActive": True,
    }]


class VariantForm:
    """Working copy of a product's variants while it is being edited."""

    def __init__(self, variants: Optional[Iterable[dict]] = None):
        self.variants = [dict(v) for v in variants] if variants else [blank_variant()]

    @classmethod
    def for_product(cls, product: dict) -> "VariantForm":
        return cls(legacy_variants(product))

    def add(self) -> None:
        self.variants.append(blank_variant())

    def remove(self, index: int) -> bool:
        # A product always keeps at least one variant
        if len(self.variants) <= 1:
            return False
        self._check(index)
        del self.variants[index]
        return True

    def update(self, index: int, field: str, value: Any) -> None:
        if field not in VARIANT_FIELDS:
            raise VariantError(f"Unknown variant field: {field}")
        self._check(index)
        self.variants[index][field] = value

    def toggle(self, index: int) -> bool:
        self._check(index)
        variant = self.variants[index]
        variant["isActive"] = not is_active(variant)
        return variant["isActive"]

    def to_document(self) -> List[Dict[str, Any]]:
        return coerce_variants(self.variants)

    def _check(self, index: int) -> None:
        if not 0 <= index < len(self.variants):
            raise VariantError(f"No variant at position {index}")


def _money(value) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return f"{CURRENCY}{value}"


def price_display(variants: Optional[Iterable[dict]], active_only: bool = True) -> str:
    eligible = [v for v in (variants or []) if not active_only or is_active(v)]
    prices = [to_number(v.get("price")) for v in eligible]
    if not prices:
        return "Unavailable"
    low, high = min(prices), max(prices)
    if low == high:
        return _money(low)
    return f"{_money(low)} - {_money(high)}"
