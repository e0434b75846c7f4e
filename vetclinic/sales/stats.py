"""
vetclinic/sales/stats.py
------------------------
Sales analytics for GET /api/sales/stats.

Every query runs over active sales whose sale_date falls inside the
[start, end] day range (end inclusive).
"""
from sqlalchemy import func, desc

from vetclinic.sales.models import Sale, SaleItem
from vetclinic.sales.repository import day_bounds


def _f(value) -> float:
    return round(float(value or 0), 2)


def _in_range(query, start_date, end_date):
    start, end = day_bounds(start_date, end_date)
    return query.filter(
        Sale.is_active.is_(True),
        Sale.sale_date >= start,
        Sale.sale_date < end,
    )


def _summary(session, start_date, end_date) -> dict:
    count, revenue, average, discount, gst = _in_range(session.query(
        func.count(Sale.id),
        func.sum(Sale.grand_total),
        func.avg(Sale.grand_total),
        func.sum(Sale.total_discount),
        func.sum(Sale.total_gst),
    ), start_date, end_date).one()

    items = _in_range(
        session.query(func.sum(SaleItem.quantity)).join(Sale, SaleItem.sale_id == Sale.id),
        start_date, end_date,
    ).scalar()

    return {
        'totalSales':    count or 0,
        'totalRevenue':  _f(revenue),
        'totalItems':    int(items or 0),
        'averageSale':   _f(average),
        'totalDiscount': _f(discount),
        'totalGST':      _f(gst),
    }


def _grouped(session, column, start_date, end_date) -> list:
    rows = _in_range(
        session.query(column, func.count(Sale.id), func.sum(Sale.grand_total)),
        start_date, end_date,
    ).group_by(column).all()
    return [
        {'_id': key.value if key is not None else None, 'count': count, 'revenue': _f(revenue)}
        for key, count, revenue in rows
    ]


def _top_items(session, start_date, end_date, limit=10) -> list:
    quantity = func.sum(SaleItem.quantity)
    rows = _in_range(
        session.query(
            SaleItem.inventory_id,
            SaleItem.name,
            SaleItem.sku,
            quantity,
            func.sum(SaleItem.total),
            func.count(SaleItem.id),
        ).join(Sale, SaleItem.sale_id == Sale.id),
        start_date, end_date,
    ).group_by(SaleItem.inventory_id, SaleItem.name, SaleItem.sku) \
     .order_by(desc(quantity)).limit(limit).all()

    return [
        {
            '_id':           inventory_id,
            'name':          name,
            'sku':           sku,
            'totalQuantity': int(qty or 0),
            'totalRevenue':  _f(revenue),
            'salesCount':    sales_count,
        }
        for inventory_id, name, sku, qty, revenue, sales_count in rows
    ]


def _daily_trend(session, start_date, end_date) -> list:
    day = func.date(Sale.sale_date)
    rows = _in_range(
        session.query(day, func.count(Sale.id), func.sum(Sale.grand_total)),
        start_date, end_date,
    ).group_by(day).order_by(day).all()
    return [
        {'_id': str(d), 'sales': count, 'revenue': _f(revenue)}
        for d, count, revenue in rows
    ]


def sales_statistics(session, start_date, end_date) -> dict:
    """All sales analytics for the range, shaped for the JSON response."""
    summary = _summary(session, start_date, end_date)
    average_items = summary['totalItems'] / summary['totalSales'] if summary['totalSales'] else 0

    return {
        'period': {
            'startDate': start_date.isoformat(),
            'endDate':   end_date.isoformat(),
        },
        'summary':             summary,
        'salesByStatus':       _grouped(session, Sale.status, start_date, end_date),
        'paymentStats':        _grouped(session, Sale.payment_status, start_date, end_date),
        'paymentMethods':      _grouped(session, Sale.payment_method, start_date, end_date),
        'topItems':            _top_items(session, start_date, end_date),
        'dailyTrend':          _daily_trend(session, start_date, end_date),
        'averageItemsPerSale': round(average_items, 2),
    }
