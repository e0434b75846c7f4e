"""
vetclinic/sales/numbering.py
----------------------------
Concurrency-safe sale number generation.

Format:  {PREFIX}-YYYYMM-NNNN
Example: SAL-202610-0001, SAL-202610-0002, … SAL-202610-9999, SAL-202610-10000

Algorithm
─────────
1. Lock the SaleSequence row for (prefix, current year-month) with
   SELECT … FOR UPDATE. Concurrent creators block here until the holder
   commits.

2. If no row exists yet for this month, INSERT one seeded with the
   highest sequence already used by a sale in this month (0 if none),
   then lock it.

3. next = max(last_seq, highest existing sequence) + 1, written back.

4. Return the formatted number.

The lock is released when the caller's transaction commits (or rolls back),
and the sale row is inserted in that same transaction, so the counter only
advances for sales that actually commit. A rolled-back sale leaves no gap.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = 'SAL'


def period_for(when: datetime) -> str:
    """'202610' for any moment in October 2026."""
    return f"{when.year}{when.month:02d}"


def format_sale_number(prefix: str, period: str, seq: int) -> str:
    # Zero-pad to 4 digits; grows naturally beyond 4 for busy months
    return f"{prefix}-{period}-{seq:04d}"


def parse_sequence(sale_number: str) -> Optional[int]:
    """Trailing integer of a sale number: 'SAL-202610-0042' → 42, None when malformed."""
    tail = sale_number.rsplit('-', 1)[-1]
    if not (tail.isascii() and tail.isdigit()):
        return None
    return int(tail)


def highest_existing_sequence(db_session, prefix: str, period: str) -> int:
    """
    Largest sequence among sales already numbered for this period.

    Ordered by length first so SAL-202610-10000 sorts after SAL-202610-9999.
    Numbers with a non-numeric tail (hand-entered imports) are skipped.
    """
    from vetclinic.sales.models import Sale

    stem = f"{prefix}-{period}-"
    rows = (
        db_session.query(Sale.sale_number)
        .filter(Sale.sale_number.like(f"{stem}%"))
        .order_by(func.length(Sale.sale_number).desc(), Sale.sale_number.desc())
    )
    for (sale_number,) in rows:
        seq = parse_sequence(sale_number)
        if seq is not None:
            return seq
    return 0


def generate_sale_number(db_session, prefix: str = DEFAULT_PREFIX, when: datetime = None) -> str:
    """
    Allocate the next sale number for the month of `when` (default: now).

    MUST be called inside an open SQLAlchemy transaction.
    The FOR UPDATE lock is held until the caller commits.

    Args:
        db_session: the active SQLAlchemy session
        prefix:     number prefix, normally app.config['SALE_NUMBER_PREFIX']
        when:       timestamp whose year-month selects the sequence

    Returns:
        str — e.g. "SAL-202610-0042"
    """
    from vetclinic.sales.models import SaleSequence

    period = period_for(when or datetime.now())

    seq_row = (
        db_session.query(SaleSequence)
        .filter(SaleSequence.prefix == prefix, SaleSequence.period == period)
        .with_for_update()
        .first()
    )

    if seq_row is None:
        # First sale of the month for this prefix:
        # seed from whatever numbers already exist.
        seq_row = SaleSequence(
            prefix=prefix,
            period=period,
            last_seq=highest_existing_sequence(db_session, prefix, period),
        )
        db_session.add(seq_row)
        db_session.flush()

        seq_row = (
            db_session.query(SaleSequence)
            .filter(SaleSequence.prefix == prefix, SaleSequence.period == period)
            .with_for_update()
            .first()
        )

    # Never fall behind numbers written outside this counter (imports, manual fixes)
    existing = highest_existing_sequence(db_session, prefix, period)
    seq_row.last_seq = max(seq_row.last_seq, existing) + 1
    db_session.flush()

    sale_number = format_sale_number(prefix, period, seq_row.last_seq)
    logger.debug(f"Allocated sale number {sale_number}")
    return sale_number
