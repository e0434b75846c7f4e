"""
vetclinic/ledger.py
-------------------
Pure-Python sale ledger arithmetic.

    line inputs ──compute_line()──▶ LineAmounts
    [LineAmounts…] ──compute_totals()──▶ SaleTotals
    (paid, grand total, status) ──settle_payment()──▶ (status, due)

No DB access and no Flask here — the Sale model calls into this module from
recalculate() and apply_payment(), and the tests exercise it directly.

All money is Decimal, never float. Every derived amount is quantized to
paise (0.01, ROUND_HALF_UP) so stored NUMERIC(12,2) values and in-memory
values are identical.
"""
from __future__ import annotations

import enum
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from vetclinic.errors import PaymentError

Q    = Decimal('0.01')   # quantize target
ZERO = Decimal('0.00')
HUNDRED = Decimal('100')


# ── Enumerations shared by models, validators and serializers ─────

class DiscountType(enum.Enum):
    percentage = 'percentage'
    fixed      = 'fixed'


class GSTType(enum.Enum):
    CGST_SGST  = 'CGST_SGST'
    IGST       = 'IGST'
    EXEMPT     = 'EXEMPT'
    NIL_RATED  = 'NIL_RATED'
    ZERO_RATED = 'ZERO_RATED'


class PaymentMethod(enum.Enum):
    cash          = 'cash'
    card          = 'card'
    upi           = 'upi'
    bank_transfer = 'bank_transfer'
    cheque        = 'cheque'
    credit        = 'credit'


class PaymentStatus(enum.Enum):
    pending   = 'pending'
    partial   = 'partial'
    paid      = 'paid'
    refunded  = 'refunded'
    cancelled = 'cancelled'


class SaleStatus(enum.Enum):
    draft     = 'draft'
    confirmed = 'confirmed'
    delivered = 'delivered'
    cancelled = 'cancelled'
    returned  = 'returned'


# Statuses set by the cancellation/refund flow; payments never move a sale out of them.
CLOSED_PAYMENT_STATUSES = frozenset({PaymentStatus.refunded, PaymentStatus.cancelled})

# Forward order of the payment-driven states.
_PAYMENT_RANK = {
    PaymentStatus.pending: 0,
    PaymentStatus.partial: 1,
    PaymentStatus.paid:    2,
}


def to_decimal(value) -> Decimal:
    """Coerce int/str/float/Decimal/None to Decimal without float noise."""
    if value is None:
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value) -> Decimal:
    return to_decimal(value).quantize(Q, rounding=ROUND_HALF_UP)


# ── Line items ────────────────────────────────────────────────────

@dataclass(frozen=True)
class LineAmounts:
    """The five derived amounts of one sale line."""
    subtotal:        Decimal
    discount_amount: Decimal
    taxable_amount:  Decimal
    gst_amount:      Decimal
    total:           Decimal


def compute_line(quantity, unit_price, discount=0,
                 discount_type=DiscountType.percentage,
                 gst_applicable=True, gst_rate=0) -> LineAmounts:
    """
    Derive a line's amounts from its raw inputs.

        subtotal        = quantity × unit_price
        discount_amount = subtotal × discount / 100   (percentage)
                        = discount                    (fixed)
        taxable_amount  = subtotal − discount_amount
        gst_amount      = taxable_amount × gst_rate / 100, or 0 when not applicable
        total           = taxable_amount + gst_amount

    A percentage discount always applies to the pre-discount subtotal.
    No clamping: a fixed discount above the subtotal gives a negative
    taxable amount, which the request validators reject before we get here.
    """
    if isinstance(discount_type, str):
        discount_type = DiscountType(discount_type)

    subtotal = money(to_decimal(quantity) * to_decimal(unit_price))

    if discount_type == DiscountType.percentage:
        discount_amount = money(subtotal * to_decimal(discount) / HUNDRED)
    else:
        discount_amount = money(discount)

    taxable_amount = subtotal - discount_amount

    if gst_applicable:
        gst_amount = money(taxable_amount * to_decimal(gst_rate) / HUNDRED)
    else:
        gst_amount = ZERO

    return LineAmounts(
        subtotal=subtotal,
        discount_amount=discount_amount,
        taxable_amount=taxable_amount,
        gst_amount=gst_amount,
        total=taxable_amount + gst_amount,
    )


def gst_split(gst_amount, gst_type) -> dict:
    """
    Break a line's GST into its CGST/SGST/IGST components.
    CGST_SGST is split in half (SGST takes the odd paisa), IGST is the whole
    amount, and the exempt categories carry no components.
    """
    if isinstance(gst_type, str):
        gst_type = GSTType(gst_type)
    gst_amount = money(gst_amount)

    cgst = sgst = igst = ZERO
    if gst_type == GSTType.CGST_SGST:
        cgst = money(gst_amount / 2)
        sgst = gst_amount - cgst
    elif gst_type == GSTType.IGST:
        igst = gst_amount
    return {'cgst': cgst, 'sgst': sgst, 'igst': igst}


# ── Sale totals ───────────────────────────────────────────────────

@dataclass(frozen=True)
class SaleTotals:
    subtotal:       Decimal = ZERO
    total_discount: Decimal = ZERO
    total_taxable:  Decimal = ZERO
    total_gst:      Decimal = ZERO
    grand_total:    Decimal = ZERO


def compute_totals(lines) -> SaleTotals:
    """
    Sum per-line amounts into sale totals.

    `lines` is any sequence of objects exposing the LineAmounts attributes
    (LineAmounts itself, or SaleItem rows after recalculation).
    Anything that is not a sequence (None, a dict, a bare number) yields
    all-zero totals instead of an error.
    """
    if not isinstance(lines, Sequence) or isinstance(lines, (str, bytes)):
        return SaleTotals()

    subtotal = total_discount = total_taxable = total_gst = grand_total = ZERO
    for line in lines:
        subtotal       += to_decimal(line.subtotal)
        total_discount += to_decimal(line.discount_amount)
        total_taxable  += to_decimal(line.taxable_amount)
        total_gst      += to_decimal(line.gst_amount)
        grand_total    += to_decimal(line.total)

    return SaleTotals(
        subtotal=subtotal,
        total_discount=total_discount,
        total_taxable=total_taxable,
        total_gst=total_gst,
        grand_total=grand_total,
    )


# ── Payment state ─────────────────────────────────────────────────

def due_amount(grand_total, paid_amount) -> Decimal:
    """What is still owed; never negative."""
    return max(money(grand_total) - money(paid_amount), ZERO)


def status_for_amounts(paid_amount, grand_total) -> PaymentStatus:
    """
    Status an explicit paid amount implies, ignoring history.
    Used when a sale is created or its payment block is overwritten.
    """
    paid_amount = money(paid_amount)
    if paid_amount <= 0:
        return PaymentStatus.pending
    if paid_amount >= money(grand_total):
        return PaymentStatus.paid
    return PaymentStatus.partial


def settle_payment(current_status, paid_amount, grand_total):
    """
    Status and due amount after a payment brought the running total to
    `paid_amount`.

    Transitions only move forward: pending → partial → paid. Overpayment is
    not rejected here; it forces `paid` with nothing due.

    Returns (PaymentStatus, due Decimal).
    """
    if current_status in CLOSED_PAYMENT_STATUSES:
        raise PaymentError(
            f'Cannot apply a payment to a sale whose payment is {current_status.value}.'
        )

    target = status_for_amounts(paid_amount, grand_total)
    if current_status is not None and _PAYMENT_RANK[target] < _PAYMENT_RANK[current_status]:
        target = current_status

    return target, due_amount(grand_total, paid_amount)
