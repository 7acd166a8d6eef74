"""
Unit Tests for Amount in Words (Indian numbering)
"""

import os
import sys
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.logic.amount_words import amount_in_words, integer_in_words


@pytest.mark.parametrize("n,words", [
    (0, "Zero"),
    (7, "Seven"),
    (19, "Nineteen"),
    (40, "Forty"),
    (105, "One Hundred Five"),
    (1000, "One Thousand"),
    (125000, "One Lakh Twenty Five Thousand"),
    (10000000, "One Crore"),
    (1000000000, "One Hundred Crore"),
])
def test_integer_in_words(n: int, words: str) -> None:
    assert integer_in_words(n) == words


def test_rupees_and_paise() -> None:
    assert amount_in_words(Decimal("125000.50")) == (
        "Rupees One Lakh Twenty Five Thousand and Paise Fifty Only"
    )


def test_whole_rupees_have_no_paise_part() -> None:
    assert amount_in_words(1100) == "Rupees One Thousand One Hundred Only"


def test_amount_is_rounded_to_paise_first() -> None:
    assert amount_in_words("10.999") == "Rupees Eleven Only"


def test_negative_amount() -> None:
    assert amount_in_words("-5") == "Minus Rupees Five Only"
