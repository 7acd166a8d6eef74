"""
Amount in words using the Indian numbering system (thousand, lakh, crore).

    amount_in_words(Decimal("125000.50"))
    -> "Rupees One Lakh Twenty Five Thousand and Paise Fifty Only"
"""

from decimal import Decimal

from app.logic.decimal_gateway import to_money

_ONES = (
    "", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine",
    "Ten", "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen",
    "Seventeen", "Eighteen", "Nineteen",
)
_TENS = ("", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety")


def _two_digits(n: int) -> str:
    if n < 20:
        return _ONES[n]
    return f"{_TENS[n // 10]} {_ONES[n % 10]}".strip()


def _three_digits(n: int) -> str:
    hundreds, rest = divmod(n, 100)
    parts = []
    if hundreds:
        parts.append(f"{_ONES[hundreds]} Hundred")
    if rest:
        parts.append(_two_digits(rest))
    return " ".join(parts)


def integer_in_words(n: int) -> str:
    """Spell a non-negative integer; crores above 99 recurse ("One Hundred Crore")."""
    if n == 0:
        return "Zero"

    crore, n = divmod(n, 10_000_000)
    lakh, n = divmod(n, 100_000)
    thousand, n = divmod(n, 1_000)

    parts = []
    if crore:
        parts.append(f"{integer_in_words(crore)} Crore")
    if lakh:
        parts.append(f"{_two_digits(lakh)} Lakh")
    if thousand:
        parts.append(f"{_two_digits(thousand)} Thousand")
    if n:
        parts.append(_three_digits(n))
    return " ".join(parts)


def amount_in_words(amount) -> str:
    value: Decimal = to_money(amount)
    negative = value < 0
    value = abs(value)
    rupees = int(value)
    paise = int((value - rupees) * 100)

    words = f"Rupees {integer_in_words(rupees)}"
    if paise:
        words += f" and Paise {_two_digits(paise)}"
    words += " Only"
    return f"Minus {words}" if negative else words
