"""
test_numbering.py — Sale number allocation (SAL-YYYYMM-NNNN).
Run: pytest test_numbering.py -v
"""
import os
os.environ['FLASK_RUN_FROM_CLI'] = '1'

import re
import pytest
from datetime import datetime
from decimal import Decimal

from vetclinic import create_app, db
from vetclinic.auth.models import User, RoleEnum
from vetclinic.owners.models import Owner
from vetclinic.errors import SaleError
from vetclinic.sales.models import Sale, SaleItem, SaleSequence
from vetclinic.sales.numbering import (
    format_sale_number, generate_sale_number, highest_existing_sequence,
    parse_sequence, period_for,
)
from vetclinic.sales.repository import SaleRepository

OCT_2026 = datetime(2026, 10, 14, 11, 30)
NUMBER_RE = re.compile(r'^SAL-\d{6}-\d{4,}$')


# ── Fixtures ──────────────────────────────────────────────────────

@pytest.fixture(scope='function')
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()

        admin = User(username='admin', name='Admin', role=RoleEnum.admin)
        admin.set_password('admin123')
        db.session.add(admin)
        db.session.add(Owner(first_name='Asha', last_name='Rao', phone='9800000001'))
        db.session.commit()

        yield app
        db.drop_all()


def insert_sale(sale_number):
    """A bare numbered sale row, bypassing the allocator."""
    sale = Sale(
        sale_number=sale_number,
        owner_id=Owner.query.first().id,
        sales_person_id=User.query.first().id,
    )
    db.session.add(sale)
    db.session.commit()
    return sale


# ── Formatting ────────────────────────────────────────────────────

def test_period_and_format():
    assert period_for(OCT_2026) == '202610'
    assert period_for(datetime(2027, 1, 1)) == '202701'
    assert format_sale_number('SAL', '202610', 7) == 'SAL-202610-0007'
    assert format_sale_number('SAL', '202610', 12345) == 'SAL-202610-12345'
    assert parse_sequence('SAL-202610-0042') == 42
    assert parse_sequence('SAL-202610-IMPORT') is None
    assert parse_sequence('SAL-202610-') is None


# ── Allocation ────────────────────────────────────────────────────

def test_first_sale_of_month_is_0001(app):
    number = generate_sale_number(db.session, when=OCT_2026)
    db.session.commit()
    assert number == 'SAL-202610-0001'
    assert NUMBER_RE.match(number)


def test_sequence_increments_by_one(app):
    numbers = [generate_sale_number(db.session, when=OCT_2026) for _ in range(3)]
    db.session.commit()
    assert numbers == ['SAL-202610-0001', 'SAL-202610-0002', 'SAL-202610-0003']
    assert db.session.get(SaleSequence, ('SAL', '202610')).last_seq == 3


def test_new_month_restarts_at_0001(app):
    generate_sale_number(db.session, when=OCT_2026)
    generate_sale_number(db.session, when=OCT_2026)
    assert generate_sale_number(db.session, when=datetime(2026, 11, 1)) == 'SAL-202611-0001'


def test_counter_seeded_from_existing_sales(app):
    """Numbers written before the counter row existed are never reused."""
    insert_sale('SAL-202610-0041')
    assert generate_sale_number(db.session, when=OCT_2026) == 'SAL-202610-0042'


def test_counter_never_falls_behind_existing_sales(app):
    generate_sale_number(db.session, when=OCT_2026)           # counter at 1
    db.session.commit()
    insert_sale('SAL-202610-0010')                             # imported out of band
    assert generate_sale_number(db.session, when=OCT_2026) == 'SAL-202610-0011'


def test_highest_sequence_orders_by_length(app):
    insert_sale('SAL-202610-9999')
    insert_sale('SAL-202610-10000')
    assert highest_existing_sequence(db.session, 'SAL', '202610') == 10000
    assert generate_sale_number(db.session, when=OCT_2026) == 'SAL-202610-10001'


def test_other_prefixes_and_months_ignored(app):
    insert_sale('SAL-202609-0500')
    insert_sale('VET-202610-0300')
    assert highest_existing_sequence(db.session, 'SAL', '202610') == 0


def test_custom_prefix(app):
    assert generate_sale_number(db.session, prefix='VET', when=OCT_2026) == 'VET-202610-0001'


def test_prefix_change_keeps_separate_counters(app):
    assert generate_sale_number(db.session, when=OCT_2026) == 'SAL-202610-0001'
    assert generate_sale_number(db.session, prefix='VET', when=OCT_2026) == 'VET-202610-0001'
    assert generate_sale_number(db.session, when=OCT_2026) == 'SAL-202610-0002'
    db.session.commit()
    assert db.session.get(SaleSequence, ('SAL', '202610')).last_seq == 2
    assert db.session.get(SaleSequence, ('VET', '202610')).last_seq == 1


def test_malformed_existing_number_skipped(app):
    insert_sale('SAL-202610-0007')
    insert_sale('SAL-202610-IMPORTED')           # longest, sorts first
    assert highest_existing_sequence(db.session, 'SAL', '202610') == 7
    assert generate_sale_number(db.session, when=OCT_2026) == 'SAL-202610-0008'


def test_only_malformed_numbers_seed_zero(app):
    insert_sale('SAL-202610-LEGACY')
    assert generate_sale_number(db.session, when=OCT_2026) == 'SAL-202610-0001'


# ── Repository save ───────────────────────────────────────────────

def _unsaved_sale():
    sale = Sale(
        owner_id=Owner.query.first().id,
        sales_person_id=User.query.first().id,
    )
    sale.items.append(SaleItem(inventory_id=1, name='Kibble', sku='K-1',
                               quantity=1, unit_price=Decimal('100')))
    return sale


def test_save_assigns_number_once(app):
    repo = SaleRepository(db.session, prefix='SAL')
    sale = repo.save(_unsaved_sale())
    db.session.commit()

    first = sale.sale_number
    assert NUMBER_RE.match(first)
    assert parse_sequence(first) == 1

    sale.notes = 'edited'
    repo.save(sale)
    db.session.commit()
    assert sale.sale_number == first


def test_save_recalculates_before_write(app):
    repo = SaleRepository(db.session)
    sale = repo.save(_unsaved_sale())
    db.session.commit()
    assert sale.grand_total == Decimal('118.00')

    sale.items[0].quantity = 2
    repo.save(sale)
    db.session.commit()
    assert sale.grand_total == Decimal('236.00')
    assert sale.due_amount == Decimal('236.00')


def test_consecutive_saves_get_consecutive_numbers(app):
    repo = SaleRepository(db.session)
    first = repo.save(_unsaved_sale())
    second = repo.save(_unsaved_sale())
    db.session.commit()
    assert parse_sequence(second.sale_number) == parse_sequence(first.sale_number) + 1


def test_assigned_number_cannot_change(app):
    sale = insert_sale('SAL-202610-0001')
    with pytest.raises(SaleError):
        sale.sale_number = 'SAL-202610-0002'


def test_sale_number_is_unique(app):
    from sqlalchemy.exc import IntegrityError
    insert_sale('SAL-202610-0001')
    with pytest.raises(IntegrityError):
        insert_sale('SAL-202610-0001')
    db.session.rollback()
