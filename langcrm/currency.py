"""Currency display table and amount formatting."""

from typing import NamedTuple, Optional, Union

from langcrm.models import Currency


class CurrencyInfo(NamedTuple):
    code: Currency
    name: str
    symbol: str
    decimals: int


CURRENCIES: dict[Currency, CurrencyInfo] = {
    info.code: info
    for info in (
        CurrencyInfo(Currency.USD, "US Dollar", "$", 2),
        CurrencyInfo(Currency.UGX, "Ugandan Shilling", "UGX", 0),
        CurrencyInfo(Currency.EUR, "Euro", "€", 2),
        CurrencyInfo(Currency.GBP, "British Pound", "£", 2),
        CurrencyInfo(Currency.KES, "Kenyan Shilling", "KSh", 2),
        CurrencyInfo(Currency.TZS, "Tanzanian Shilling", "TSh", 0),
        CurrencyInfo(Currency.RWF, "Rwandan Franc", "FRw", 0),
        CurrencyInfo(Currency.ZAR, "South African Rand", "R", 2),
        CurrencyInfo(Currency.NGN, "Nigerian Naira", "₦", 2),
        CurrencyInfo(Currency.GHS, "Ghanaian Cedi", "GH₵", 2),
        CurrencyInfo(Currency.JPY, "Japanese Yen", "¥", 0),
        CurrencyInfo(Currency.CNY, "Chinese Yuan", "¥", 2),
        CurrencyInfo(Currency.INR, "Indian Rupee", "₹", 2),
        CurrencyInfo(Currency.AUD, "Australian Dollar", "A$", 2),
        CurrencyInfo(Currency.CAD, "Canadian Dollar", "C$", 2),
    )
}


def currency_info(code: Union[Currency, str, None]) -> CurrencyInfo:
    """Look up a currency, falling back to USD for unknown codes."""
    try:
        return CURRENCIES[Currency(code)]
    except ValueError:
        return CURRENCIES[Currency.USD]


def format_amount(amount: Optional[float], code: Union[Currency, str, None] = Currency.USD) -> str:
    """Render ``amount`` with its symbol, grouping and currency decimals.

    >>> format_amount(1234.5, "USD")
    '$1,234.50'
    >>> format_amount(50000, "UGX")
    'UGX 50,000'
    """
    info = currency_info(code)
    value = f"{(amount or 0):,.{info.decimals}f}"
    # Alphabetic symbols read better separated from the digits
    sep = " " if info.symbol.isalpha() else ""
    return f"{info.symbol}{sep}{value}"
