"""
vetclinic/sales/repository.py
-----------------------------
Database access for Sale aggregates.

The repository is handed the session it works through:

    repo = SaleRepository(db.session, prefix=current_app.config['SALE_NUMBER_PREFIX'])

It never commits. The caller (SaleService) owns the transaction so the
sale insert, its number allocation and the stock decrement commit or roll
back together.
"""
from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func

from vetclinic.ledger import PaymentStatus
from vetclinic.sales.models import Sale, SaleItem
from vetclinic.sales.numbering import DEFAULT_PREFIX, generate_sale_number


def day_bounds(start_date, end_date):
    """[start 00:00, day after end 00:00) so the end date is inclusive."""
    return (
        datetime.combine(start_date, time.min),
        datetime.combine(end_date + timedelta(days=1), time.min),
    )


class SaleRepository:
    """Queries and writes for sales, bound to one SQLAlchemy session."""

    def __init__(self, session, prefix: str = DEFAULT_PREFIX):
        self.session = session
        self.prefix  = prefix

    # ── Reads ─────────────────────────────────────────────────────
    def get(self, sale_id: int) -> Optional[Sale]:
        return self.session.get(Sale, sale_id)

    def get_for_update(self, sale_id: int) -> Optional[Sale]:
        """Load the sale row with SELECT … FOR UPDATE, held until commit."""
        return (
            self.session.query(Sale)
            .filter(Sale.id == sale_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def _filtered(self, filters: dict):
        query = self.session.query(Sale).filter(Sale.is_active.is_(True))

        if filters.get('status'):
            query = query.filter(Sale.status == filters['status'])
        if filters.get('payment_status'):
            query = query.filter(Sale.payment_status == filters['payment_status'])
        if filters.get('customer_id'):
            query = query.filter(Sale.owner_id == filters['customer_id'])
        if filters.get('start_date') and filters.get('end_date'):
            start, end = day_bounds(filters['start_date'], filters['end_date'])
            query = query.filter(Sale.sale_date >= start, Sale.sale_date < end)

        search = (filters.get('search') or '').strip()
        if search:
            like = f'%{search}%'
            query = query.filter(
                Sale.sale_number.ilike(like) |
                Sale.notes.ilike(like) |
                Sale.items.any(SaleItem.name.ilike(like))
            )
        return query

    def list_sales(self, filters: dict, page: int = 1, limit: int = 10):
        """
        One page of active sales, newest first, plus the total match count.

        Returns (sales, total).
        """
        query = self._filtered(filters)
        total = query.count()
        sales = (
            query.order_by(Sale.sale_date.desc(), Sale.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return sales, total

    def statistics(self, filters: dict) -> dict:
        """Count, revenue, items sold and average sale over the filtered set."""
        ids = self._filtered(filters).with_entities(Sale.id).subquery()

        count, revenue, average = self.session.query(
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.grand_total), 0),
            func.coalesce(func.avg(Sale.grand_total), 0),
        ).filter(Sale.id.in_(ids.select())).one()

        items = self.session.query(
            func.coalesce(func.sum(SaleItem.quantity), 0)
        ).filter(SaleItem.sale_id.in_(ids.select())).scalar()

        return {
            'totalSales':   count or 0,
            'totalRevenue': float(revenue or 0),
            'totalItems':   int(items or 0),
            'averageSale':  round(float(average or 0), 2),
        }

    def pending_payments(self) -> list:
        """Active sales with money still owed, oldest first."""
        return (
            self.session.query(Sale)
            .filter(
                Sale.is_active.is_(True),
                Sale.payment_status.in_([PaymentStatus.pending, PaymentStatus.partial]),
            )
            .order_by(Sale.sale_date.asc())
            .all()
        )

    def outstanding_total(self) -> Decimal:
        value = (
            self.session.query(func.coalesce(func.sum(Sale.due_amount), 0))
            .filter(Sale.is_active.is_(True))
            .scalar()
        )
        return Decimal(str(value or 0))

    # ── Writes ────────────────────────────────────────────────────
    def save(self, sale: Sale) -> Sale:
        """
        Recalculate and stage a sale for the caller's transaction.

        New sales get their number here, before the object joins the
        session: sale_number is NOT NULL and an autoflush of a numberless
        sale would fail.
        """
        sale.recalculate()
        if sale.sale_number is None:
            sale.sale_number = generate_sale_number(self.session, self.prefix)
        self.session.add(sale)
        self.session.flush()
        return sale
