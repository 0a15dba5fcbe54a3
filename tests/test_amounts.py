from decimal import Decimal

import pytest

from yieldway.errors import InvalidRequestError
from yieldway.utils.amounts import from_base_units, positive_amount, quantize_amount, to_base_units


def test_quantize_truncates_never_rounds_up() -> None:
    assert quantize_amount(Decimal("1.0000009")) == Decimal("1.000000")
    assert quantize_amount(Decimal("2.9999999")) == Decimal("2.999999")


def test_floats_keep_their_printed_value() -> None:
    assert to_base_units(0.7, 6) == 700_000
    assert quantize_amount(0.1) == Decimal("0.1")


def test_from_base_units_is_exact() -> None:
    assert from_base_units(0, 6) == Decimal("0")
    assert str(from_base_units(800_000, 6)) == "0.8"


@pytest.mark.parametrize("amount", ["0", "-1", "0.0000009", "NaN", "abc", None])
def test_positive_amount_rejects(amount) -> None:
    with pytest.raises(InvalidRequestError):
        positive_amount(amount)


def test_positive_amount_accepts_strings() -> None:
    assert positive_amount("12.5") == Decimal("12.5")
