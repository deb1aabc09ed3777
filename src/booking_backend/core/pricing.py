'''
Price helpers shared by booking and payment reconciliation.
'''
import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from ..common.config import settings
from ..database.db_enums import PaymentProcessor

CENTS = Decimal("0.01")
_TITLE_PRICE = re.compile(r'\$(\d+(\.\d{1,2})?)')


def extract_price_from_title(title: Optional[str]) -> Decimal:
    """'Algebra 1h $45' -> Decimal('45.00'). Titles without a price give 0."""
    match = _TITLE_PRICE.search(title or "")
    if not match:
        return Decimal("0.00")
    return Decimal(match.group(1)).quantize(CENTS)


def compute_profit(amount, processor: Optional[str]) -> Decimal:
    """
    Recognized profit of a payment.
    Square keeps 2.9% + $0.30 per charge; other processors are fee-free.
    The result is rounded to cents and never negative.
    """
    amount = Decimal(str(amount or 0))
    if processor and processor.strip().lower() == PaymentProcessor.SQUARE.value.lower():
        fee = amount * settings.SQUARE_FEE_PERCENT + settings.SQUARE_FEE_FIXED
        amount = amount - fee
    return max(amount, Decimal("0")).quantize(CENTS, rounding=ROUND_HALF_UP)


def square_charge_amount(amount) -> Decimal:
    """
    What to charge through Square so the fees are passed to the payer:
    the amount plus 2.9% + $0.30 of it, rounded to cents.
    """
    amount = Decimal(str(amount or 0))
    fee = amount * settings.SQUARE_FEE_PERCENT + settings.SQUARE_FEE_FIXED
    return (amount + fee).quantize(CENTS, rounding=ROUND_HALF_UP)
