import pytest

from variants import (
    VariantError, VariantForm, blank_variant, coerce_variants, legacy_variants, price_display, to_number,
)


def test_new_form_starts_with_one_blank_variant():
    form = VariantForm()
    assert form.variants == [blank_variant()]
    assert form.variants[0]["unit"] == "gms"
    assert form.variants[0]["isActive"] is True


def test_last_variant_cannot_be_removed():
    form = VariantForm()
    assert form.remove(0) is False
    assert len(form.variants) == 1

    form.add()
    assert form.remove(0) is True
    assert len(form.variants) == 1


def test_update_and_toggle_by_index():
    form = VariantForm([{"weight": 250, "unit": "gms", "price": 120, "stock": 10}])
    form.update(0, "price", "135")
    assert form.variants[0]["price"] == "135"
    assert form.toggle(0) is False
    assert form.variants[0]["price"] == "135"
    assert form.toggle(0) is True

    with pytest.raises(VariantError):
        form.update(3, "price", 1)
    with pytest.raises(VariantError):
        form.update(0, "colour", "red")


def test_save_coerces_numbers():
    form = VariantForm([{"weight": "250", "unit": "gms", "price": "120", "stock": "10"}])
    saved = form.to_document()
    assert saved == [{"weight": 250, "unit": "gms", "price": 120, "stock": 10, "isActive": True}]
    assert all(isinstance(saved[0][k], int) for k in ("weight", "price", "stock"))


def test_blank_and_garbage_become_zero():
    assert to_number("") == 0
    assert to_number(None) == 0
    assert to_number("abc") == 0
    assert to_number("12.5") == 12.5
    assert to_number("3.0") == 3
    assert coerce_variants([{"price": "x"}])[0]["price"] == 0


def test_price_display():
    variants = [
        {"price": 100, "isActive": True},
        {"price": 250, "isActive": True},
        {"price": 40, "isActive": False},
    ]
    assert price_display(variants) == "₹100 - ₹250"
    assert price_display(variants, active_only=False) == "₹40 - ₹250"
    assert price_display([{"price": 120.0}]) == "₹120"
    assert price_display([{"price": 99, "isActive": False}]) == "Unavailable"
    assert price_display([]) == "Unavailable"


def test_legacy_product_gets_a_single_variant():
    product = {"name": "Ladoo", "quantity": 500, "unit": "gms", "price": 180, "stockCount": 12}
    assert legacy_variants(product) == [
        {"weight": 500, "unit": "gms", "price": 180, "stock": 12, "isActive": True}
    ]
    form = VariantForm.for_product({"variants": [{"price": 1}, {"price": 2}]})
    assert len(form.variants) == 2
