from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional


@dataclass(frozen=True)
class Country:
    code: str
    name: str
    currency: str
    currency_symbol: str


DEFAULT_COUNTRY_CODE = "US"

SUPPORTED_COUNTRIES: tuple[Country, ...] = (
    Country("US", "United States", "USD", "$"),
    Country("CA", "Canada", "CAD", "C$"),
    Country("MX", "Mexico", "MXN", "MX$"),
    Country("RU", "Russia", "RUB", "₽"),
    Country("GB", "England", "GBP", "£"),
    Country("CN", "China", "CNY", "¥"),
    Country("BR", "Brazil", "BRL", "R$"),
    Country("AE", "UAE", "AED", "د.إ"),
)

_BY_CODE = {country.code: country for country in SUPPORTED_COUNTRIES}


def get_country_by_code(code: Optional[str]) -> Optional[Country]:
    if not code:
        return None
    return _BY_CODE.get(code.strip().upper())


def currency_for_country(code: Optional[str]) -> Optional[str]:
    country = get_country_by_code(code)
    return country.currency if country else None


def format_currency(amount: Decimal, country: Country) -> str:
    rounded = Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{country.currency_symbol}{rounded:,.2f}"
