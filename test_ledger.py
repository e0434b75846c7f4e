"""
test_ledger.py — Line amounts, sale totals and payment state.
Run: pytest test_ledger.py -v

Pure arithmetic: no app, no database. The Sale model is only instantiated
transiently to exercise recalculate() and apply_payment().
"""
import pytest
from decimal import Decimal

from vetclinic.errors import PaymentError
from vetclinic.ledger import (
    DiscountType, GSTType, LineAmounts, PaymentStatus,
    compute_line, compute_totals, due_amount, gst_split,
    money, settle_payment, status_for_amounts,
)
# Mapper configuration needs every related model registered
from vetclinic.auth.models import User  # noqa: F401
from vetclinic.owners.models import Owner, Pet  # noqa: F401
from vetclinic.inventory.models import InventoryItem  # noqa: F401
from vetclinic.sales.models import Sale, SaleItem


def D(value):
    return Decimal(str(value))


# ── Line amounts ──────────────────────────────────────────────────

def test_percentage_discount_with_gst():
    """2 × ₹100, 10% off, 18% GST."""
    line = compute_line(quantity=2, unit_price=100, discount=10,
                        discount_type=DiscountType.percentage,
                        gst_applicable=True, gst_rate=18)
    assert line.subtotal        == D('200.00')
    assert line.discount_amount == D('20.00')
    assert line.taxable_amount  == D('180.00')
    assert line.gst_amount      == D('32.40')
    assert line.total           == D('212.40')


def test_fixed_discount():
    line = compute_line(3, D('49.99'), discount=D('15'), discount_type='fixed', gst_rate=5)
    assert line.subtotal        == D('149.97')
    assert line.discount_amount == D('15.00')
    assert line.taxable_amount  == D('134.97')
    assert line.gst_amount      == D('6.75')      # 6.7485 rounds half up
    assert line.total           == D('141.72')


def test_gst_not_applicable():
    line = compute_line(1, 500, gst_applicable=False, gst_rate=18)
    assert line.gst_amount == D('0')
    assert line.total == line.taxable_amount == D('500.00')


def test_percentage_discount_uses_pre_discount_subtotal():
    line = compute_line(4, 25, discount=50, discount_type=DiscountType.percentage, gst_rate=0)
    assert line.discount_amount == D('50.00')
    assert line.taxable_amount == D('50.00')


@pytest.mark.parametrize('quantity,price,discount,dtype,applicable,rate', [
    (1, 0, 0, 'percentage', True, 18),
    (7, '12.35', '12.5', 'percentage', True, 12),
    (2, '99.99', 100, 'percentage', True, 28),
    (5, '10', '3.33', 'fixed', False, 18),
    (1, '10', '25', 'fixed', True, 18),          # discount above subtotal
])
def test_line_identities_hold(quantity, price, discount, dtype, applicable, rate):
    line = compute_line(quantity, price, discount, dtype, applicable, rate)
    assert line.total == line.taxable_amount + line.gst_amount
    assert line.taxable_amount == line.subtotal - line.discount_amount


def test_oversized_fixed_discount_is_not_clamped():
    line = compute_line(1, 10, discount=25, discount_type=DiscountType.fixed, gst_rate=18)
    assert line.taxable_amount == D('-15.00')
    assert line.gst_amount == D('-2.70')


# ── GST split ─────────────────────────────────────────────────────

def test_cgst_sgst_split_keeps_odd_paisa():
    split = gst_split(D('32.41'), GSTType.CGST_SGST)
    assert split['cgst'] + split['sgst'] == D('32.41')
    assert split['igst'] == D('0')


def test_igst_takes_whole_amount():
    assert gst_split(D('9.00'), 'IGST') == {'cgst': D('0'), 'sgst': D('0'), 'igst': D('9.00')}


def test_exempt_has_no_components():
    split = gst_split(D('5.00'), GSTType.EXEMPT)
    assert all(v == 0 for v in split.values())


# ── Sale totals ───────────────────────────────────────────────────

def test_totals_sum_lines():
    lines = [
        compute_line(2, 100, 10, 'percentage', True, 18),
        compute_line(1, 50, 0, 'percentage', True, 5),
    ]
    totals = compute_totals(lines)
    assert totals.subtotal       == D('250.00')
    assert totals.total_discount == D('20.00')
    assert totals.total_taxable  == D('230.00')
    assert totals.total_gst      == D('34.90')
    assert totals.grand_total    == sum(l.total for l in lines)


@pytest.mark.parametrize('lines', [[], None, {}, 'abc', 42])
def test_totals_zero_for_empty_or_absent_items(lines):
    totals = compute_totals(lines)
    assert totals.grand_total == 0
    assert totals.subtotal == 0


def test_sale_recalculate_derives_every_amount():
    sale = Sale(sale_number='SAL-202610-0001')
    sale.items.append(SaleItem(name='Kibble', sku='K-1', inventory_id=1,
                               quantity=2, unit_price=D('100'), discount=D('10')))
    sale.items.append(SaleItem(name='Toy', sku='T-1', inventory_id=2,
                               quantity=1, unit_price=D('50'), gst_rate=D('5'),
                               gst_type=GSTType.IGST))
    sale.recalculate()

    assert sale.subtotal    == D('250.00')
    assert sale.total_gst   == D('34.90')
    assert sale.grand_total == D('264.90')
    assert sale.due_amount  == D('264.90')
    assert [item.position for item in sale.items] == [0, 1]


def test_sale_without_items_recalculates_to_zero():
    sale = Sale()
    sale.recalculate()
    assert sale.grand_total == 0
    assert sale.due_amount == 0


# ── Payment state ─────────────────────────────────────────────────

def test_status_for_amounts():
    assert status_for_amounts(0, 100) == PaymentStatus.pending
    assert status_for_amounts(40, 100) == PaymentStatus.partial
    assert status_for_amounts(100, 100) == PaymentStatus.paid
    assert status_for_amounts(150, 100) == PaymentStatus.paid


def test_due_amount_never_negative():
    assert due_amount(100, 150) == D('0.00')
    assert due_amount(D('212.40'), D('100')) == D('112.40')


def test_settle_payment_never_regresses():
    status, due = settle_payment(PaymentStatus.paid, D('10'), D('100'))
    assert status == PaymentStatus.paid
    assert due == D('90.00')


@pytest.mark.parametrize('closed', [PaymentStatus.refunded, PaymentStatus.cancelled])
def test_settle_payment_rejects_closed_statuses(closed):
    with pytest.raises(PaymentError):
        settle_payment(closed, D('10'), D('100'))


def _sale_with_total(grand_total):
    sale = Sale(sale_number='SAL-202610-0001')
    sale.grand_total = money(grand_total)
    sale.due_amount = money(grand_total)
    return sale


def test_partial_then_full_payment():
    sale = _sale_with_total(1000)

    sale.apply_payment(400, 'cash')
    assert sale.payment_status == PaymentStatus.partial
    assert sale.due_amount == D('600.00')

    sale.apply_payment(600, 'upi', transaction_id='UPI-77')
    assert sale.payment_status == PaymentStatus.paid
    assert sale.due_amount == D('0.00')
    assert sale.paid_amount == D('1000.00')
    assert sale.transaction_id == 'UPI-77'
    assert sale.payment_date is not None


@pytest.mark.parametrize('payments', [[D('0.01')], [D('250'), D('250')], [D('999.99')], [D('1200')]])
def test_payment_invariants(payments):
    sale = _sale_with_total(1000)
    for amount in payments:
        sale.apply_payment(amount, 'card')

    assert sale.due_amount == max(sale.grand_total - sale.paid_amount, 0)
    if sale.paid_amount >= sale.grand_total:
        assert sale.payment_status == PaymentStatus.paid
    else:
        assert sale.payment_status == PaymentStatus.partial


def test_zero_or_negative_payment_rejected():
    sale = _sale_with_total(1000)
    for amount in (0, -5):
        with pytest.raises(PaymentError):
            sale.apply_payment(amount, 'cash')
    assert sale.payment_status == PaymentStatus.pending
    assert sale.paid_amount == D('0.00')


def test_line_amounts_is_frozen():
    line = LineAmounts(D('1'), D('0'), D('1'), D('0'), D('1'))
    with pytest.raises(Exception):
        line.total = D('2')
