"""
vetclinic/inventory/stock.py
----------------------------
Stock side effects of a sale.

decrement_stock_for_sale() runs once, after a sale is accepted; the sale
service calls it explicitly inside the same transaction as the sale
insert. It is NOT idempotent — calling it twice for one sale deducts twice.

Each counter change is a single UPDATE … SET quantity = quantity - :q,
so concurrent sales of the same item never lose a decrement.
"""
import logging
from datetime import datetime

from sqlalchemy import update

from vetclinic.inventory.models import InventoryItem, StockMovement, MovementType

logger = logging.getLogger(__name__)


def _stockable_lines(sale):
    """Lines with an inventory reference and a positive quantity; the rest are skipped."""
    items = sale.items
    if not isinstance(items, list):
        return []
    return [item for item in items if item.inventory_id and item.quantity and item.quantity > 0]


def decrement_stock_for_sale(db_session, sale, user_id=None) -> int:
    """
    Deduct every line's quantity from its inventory item, bump totalSold,
    stamp lastSaleDate and append a 'sale' stock movement.

    Returns the number of inventory items updated.
    """
    now = datetime.utcnow()
    reference = sale.sale_number or 'Unknown'
    updated = 0

    for item in _stockable_lines(sale):
        result = db_session.execute(
            update(InventoryItem)
            .where(InventoryItem.id == item.inventory_id)
            .values(
                quantity=InventoryItem.quantity - item.quantity,
                total_sold=InventoryItem.total_sold + item.quantity,
                last_sale_date=now,
            )
            .execution_options(synchronize_session='fetch')
        )
        if result.rowcount == 0:
            logger.warning(f"Sale {reference}: inventory item {item.inventory_id} not found, stock untouched")
            continue

        db_session.add(StockMovement(
            inventory_id=item.inventory_id,
            type=MovementType.sale,
            quantity=-item.quantity,
            date=now,
            user_id=user_id,
            reference=reference,
            notes=f"Sale to {sale.customer_name}",
        ))
        updated += 1

        stocked = db_session.get(InventoryItem, item.inventory_id)
        if stocked is not None and stocked.is_low_stock:
            logger.warning(
                f"Low stock: {stocked.name} ({stocked.sku}) at {stocked.quantity}, "
                f"minimum {stocked.min_stock_level}"
            )

    return updated


def restore_stock_for_sale(db_session, sale, user_id=None,
                           notes='Sale cancelled - stock restored') -> int:
    """
    Put the quantities of the sale's current lines back on the shelf and
    record an 'adjustment' movement for each. Used on cancellation and
    before a sale's lines are replaced. Returns the number of items restored.
    """
    now = datetime.utcnow()
    restored = 0

    for item in _stockable_lines(sale):
        result = db_session.execute(
            update(InventoryItem)
            .where(InventoryItem.id == item.inventory_id)
            .values(
                quantity=InventoryItem.quantity + item.quantity,
                total_sold=InventoryItem.total_sold - item.quantity,
            )
            .execution_options(synchronize_session='fetch')
        )
        if result.rowcount == 0:
            logger.warning(f"Sale {sale.sale_number}: inventory item {item.inventory_id} not found, nothing restored")
            continue

        db_session.add(StockMovement(
            inventory_id=item.inventory_id,
            type=MovementType.adjustment,
            quantity=item.quantity,
            date=now,
            user_id=user_id,
            reference=sale.sale_number,
            notes=notes,
        ))
        restored += 1

    return restored
