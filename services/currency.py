"""
Pass-through access to external rate sources: fiat exchange rates for banking
conversions and native coin prices for wallet valuation.
"""
from decimal import Decimal, InvalidOperation
from typing import Optional
import logging
import requests

from services.config.config import CURRENCY_API_URL, CURRENCY_TIMEOUT_SECONDS, PRICE_API_URL
from services.errors import ConversionError

logger = logging.getLogger(__name__)

SUPPORTED_CURRENCIES = [
    {"code": "USD", "name": "US Dollar", "symbol": "$"},
    {"code": "EUR", "name": "Euro", "symbol": "€"},
    {"code": "GBP", "name": "British Pound", "symbol": "£"},
    {"code": "INR", "name": "Indian Rupee", "symbol": "₹"},
    {"code": "JPY", "name": "Japanese Yen", "symbol": "¥"},
    {"code": "CNY", "name": "Chinese Yuan", "symbol": "¥"},
    {"code": "AUD", "name": "Australian Dollar", "symbol": "A$"},
    {"code": "CAD", "name": "Canadian Dollar", "symbol": "C$"},
    {"code": "SGD", "name": "Singapore Dollar", "symbol": "S$"},
    {"code": "AED", "name": "UAE Dirham", "symbol": "د.إ"},
]


class RateSource:

    def __init__(self, base_url: str = CURRENCY_API_URL, timeout: int = CURRENCY_TIMEOUT_SECONDS):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def rates(self, base: str) -> dict:
        try:
            response = requests.get(f"{self.base_url}/{base}", timeout=self.timeout)
            response.raise_for_status()
            return response.json().get("rates") or {}
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Rate source request for {base} failed: {str(e)}")
            raise ConversionError(f"Exchange rates for {base} are unavailable")


def convert_currency(amount, from_currency: str, to_currency: str, source: RateSource = None) -> dict:
    """
    Convert ``amount`` using the live rate for ``from_currency`` -> ``to_currency``.
    Raises ConversionError when the source has no rate for the target.
    """
    source = source or RateSource()
    rates = source.rates(from_currency)
    if to_currency not in rates:
        raise ConversionError(f"No exchange rate from {from_currency} to {to_currency}")
    try:
        rate = Decimal(str(rates[to_currency]))
        converted = Decimal(str(amount)) * rate
    except InvalidOperation:
        raise ConversionError(f"Invalid exchange rate from {from_currency} to {to_currency}")
    return {
        "amount": converted,
        "rate": rate,
        "from_currency": from_currency,
        "to_currency": to_currency,
    }


def fetch_usd_price(price_id: str, timeout: int = CURRENCY_TIMEOUT_SECONDS) -> Optional[float]:
    """USD price of a native coin, or None when the price source is unavailable"""
    try:
        response = requests.get(
            PRICE_API_URL,
            params={"ids": price_id, "vs_currencies": "usd"},
            timeout=timeout,
        )
        response.raise_for_status()
        return float(response.json()[price_id]["usd"])
    except Exception as e:
        logger.warning(f"Price lookup for {price_id} failed: {str(e)}")
        return None
