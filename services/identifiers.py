"""
Validation and masking of financial identifiers (UPI ids, account and card numbers).

Both functions are pure. ``validate`` never raises; ``mask`` expects an identifier
that already passed ``validate`` on the production path.
"""
import re

UPI = "upi"
ACCOUNT = "account"
CARD = "card"

_UPI_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_ACCOUNT_PATTERN = re.compile(r"^[0-9]{10,16}$")
_CARD_PATTERN = re.compile(r"^[0-9]{16}$")

MASK_PLACEHOLDER = "********"


def luhn_check(number: str) -> bool:
    total = 0
    double = False
    for char in reversed(number):
        digit = int(char)
        if double:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
        double = not double
    return total % 10 == 0


def validate(method: str, identifier: str) -> bool:
    if not isinstance(identifier, str):
        return False
    # fullmatch so a trailing newline cannot sneak past "$"
    if method == UPI:
        return _UPI_PATTERN.fullmatch(identifier) is not None
    if method == ACCOUNT:
        return _ACCOUNT_PATTERN.fullmatch(identifier) is not None
    if method == CARD:
        return _CARD_PATTERN.fullmatch(identifier) is not None and luhn_check(identifier)
    return False


def mask(method: str, identifier: str) -> str:
    if method == UPI:
        local, _, domain = identifier.partition("@")
        return f"{local[:1]}****@{domain}"
    if method == ACCOUNT:
        return f"****{identifier[-4:]}"
    if method == CARD:
        return f"****-****-****-{identifier[-4:]}"
    return MASK_PLACEHOLDER
