"""
vetclinic/sales/service.py
--------------------------
Sale use cases. Each public method is one unit of work:

    create_sale     number + totals + insert + stock decrement + owner spend
    update_sale     edit fields / replace items / override payment
    record_payment  lock row, apply payment, persist
    cancel_sale     mark cancelled, put stock back

Every method commits on success. On a raised error nothing is committed;
the route that called it rolls the session back.
"""
import logging
from collections import Counter
from datetime import datetime
from decimal import Decimal

from vetclinic.errors import PaymentError, SaleError, StockError
from vetclinic.inventory.models import InventoryItem
from vetclinic.inventory.stock import decrement_stock_for_sale, restore_stock_for_sale
from vetclinic.ledger import (
    CLOSED_PAYMENT_STATUSES, GSTType, PaymentMethod, SaleStatus,
    money, settle_payment, status_for_amounts,
)
from vetclinic.sales.models import Sale, SaleItem
from vetclinic.sales.numbering import DEFAULT_PREFIX
from vetclinic.sales.repository import SaleRepository

logger = logging.getLogger(__name__)


class SaleService:

    def __init__(self, session, prefix: str = DEFAULT_PREFIX):
        self.session = session
        self.repo    = SaleRepository(session, prefix=prefix)

    # ── Helpers ───────────────────────────────────────────────────
    def _lock_rows(self, inventory_ids) -> dict:
        """
        SELECT … FOR UPDATE the given inventory rows, in id order so two
        concurrent sales sharing items can't deadlock. Missing ids map to None.
        """
        locked = {}
        for inventory_id in sorted(set(inventory_ids)):
            locked[inventory_id] = (
                self.session.query(InventoryItem)
                .filter(InventoryItem.id == inventory_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
        return locked

    def _lock_inventory(self, lines) -> dict:
        """
        Lock every inventory row the lines touch and check there is enough
        stock for the combined quantity of each.
        """
        wanted = Counter()
        for line in lines:
            wanted[line['inventory_id']] += line['quantity']

        locked = self._lock_rows(wanted)
        for inventory_id, item in locked.items():
            if item is None or not item.is_active:
                raise StockError(f'Inventory item {inventory_id} not found.')
            if item.quantity < wanted[inventory_id]:
                raise StockError(
                    f'Insufficient stock for {item.name}. '
                    f'Available: {item.quantity}, requested: {wanted[inventory_id]}.'
                )
        return locked

    @staticmethod
    def _build_item(line: dict, stocked: InventoryItem) -> SaleItem:
        """Snapshot name, SKU, price and GST settings from the inventory item."""
        unit_price = line['unit_price'] if line['unit_price'] is not None else stocked.price
        return SaleItem(
            inventory_id   = stocked.id,
            inventory_item = stocked,
            name           = stocked.name,
            sku            = stocked.sku,
            quantity       = line['quantity'],
            unit_price     = money(unit_price),
            discount       = line['discount'],
            discount_type  = line['discount_type'],
            gst_applicable = stocked.is_gst_applicable,
            gst_rate       = stocked.gst_rate,
            gst_type       = stocked.gst_type or GSTType.CGST_SGST,
            hsn_code       = stocked.hsn_code,
            sac_code       = stocked.sac_code,
            notes          = line['notes'],
        )

    @staticmethod
    def _check_discounts(sale: Sale) -> None:
        for item in sale.items:
            if item.taxable_amount < 0:
                raise SaleError(f'Discount on "{item.name}" exceeds the line subtotal.')

    @staticmethod
    def _apply_payment_block(sale: Sale, payment: dict) -> None:
        if payment.get('method') is not None:
            sale.payment_method = payment['method']
        if payment.get('transaction_id') is not None:
            sale.transaction_id = payment['transaction_id']
        if payment.get('due_date') is not None:
            sale.due_date = payment['due_date']

    # ── Use cases ─────────────────────────────────────────────────
    def create_sale(self, owner, pet, lines: list, payment: dict, sales_person_id: int,
                    notes: str = None, delivery_date: datetime = None) -> Sale:
        """
        Create a confirmed sale. `lines` come from validators.parse_items(),
        `payment` from validators.parse_payment_block().

        Raises StockError when an item is missing or short of stock and
        SaleError when a fixed discount exceeds its line subtotal.
        """
        stocked = self._lock_inventory(lines)

        sale = Sale(
            owner_id        = owner.id,
            pet_id          = pet.id if pet is not None else None,
            sales_person_id = sales_person_id,
            status          = SaleStatus.confirmed,
            sale_date       = datetime.utcnow(),
            notes           = notes,
            delivery_date   = delivery_date,
            paid_amount     = money(payment.get('paid_amount') or 0),
            payment_method  = payment.get('method') or PaymentMethod.cash,
        )
        self._apply_payment_block(sale, payment)
        for line in lines:
            sale.items.append(self._build_item(line, stocked[line['inventory_id']]))

        sale.recalculate()
        self._check_discounts(sale)
        sale.payment_status = status_for_amounts(sale.paid_amount, sale.grand_total)
        if sale.paid_amount > 0:
            sale.payment_date = datetime.utcnow()

        self.repo.save(sale)
        decrement_stock_for_sale(self.session, sale, user_id=sales_person_id)

        owner.add_to_total_spent(sale.grand_total)
        owner.record_visit()

        self.session.commit()
        logger.info(
            f"Sale {sale.sale_number} created for {sale.customer_name}: "
            f"{sale.total_items} item(s), total {sale.grand_total}, "
            f"payment {sale.payment_status.value}"
        )
        return sale

    def update_sale(self, sale: Sale, changes: dict, user_id: int = None) -> Sale:
        """
        Apply a parsed PUT body. Recognised keys: owner, pet, status,
        notes, delivery_date, lines, payment.

        Replacing the lines puts the old quantities back into stock and
        takes the new ones out, in the same transaction. Raises StockError
        when the new lines need more than is on hand.
        """
        if not sale.is_active:
            raise SaleError('Cancelled sales cannot be edited.')

        if 'owner' in changes:
            sale.owner_id = changes['owner'].id
        if 'pet' in changes:
            sale.pet_id = changes['pet'].id if changes['pet'] is not None else None

        if 'status' in changes:
            status = changes['status']
            if status == SaleStatus.cancelled:
                raise SaleError('Use DELETE to cancel a sale so its stock is restored.')
            sale.status = status

        if 'notes' in changes:
            sale.notes = changes['notes']
        if 'delivery_date' in changes:
            sale.delivery_date = changes['delivery_date']

        lines = changes.get('lines')
        if lines is not None:
            # Old and new rows stay locked until commit: put the old lines
            # back, then check and take stock for the new ones.
            self._lock_rows(
                {item.inventory_id for item in sale.items} |
                {line['inventory_id'] for line in lines}
            )
            restore_stock_for_sale(self.session, sale, user_id=user_id,
                                   notes='Sale items replaced - stock restored')
            stocked = self._lock_inventory(lines)

            sale.items.clear()
            self.session.flush()
            for line in lines:
                sale.items.append(self._build_item(line, stocked[line['inventory_id']]))

        sale.recalculate()
        self._check_discounts(sale)

        payment = changes.get('payment')
        if payment is not None:
            # Explicit override: the paid amount is replaced, not added to
            if sale.payment_status in CLOSED_PAYMENT_STATUSES:
                raise PaymentError(
                    f'Payment is {sale.payment_status.value}; amounts can no longer change.'
                )
            sale.paid_amount    = money(payment.get('paid_amount') or 0)
            sale.payment_status = status_for_amounts(sale.paid_amount, sale.grand_total)
            self._apply_payment_block(sale, payment)
        elif sale.payment_status not in CLOSED_PAYMENT_STATUSES:
            sale.payment_status, _ = settle_payment(
                sale.payment_status, sale.paid_amount, sale.grand_total
            )

        self.repo.save(sale)
        if lines is not None:
            decrement_stock_for_sale(self.session, sale, user_id=user_id)

        self.session.commit()
        logger.info(f"Sale {sale.sale_number} updated: total {sale.grand_total}, due {sale.due_amount}")
        return sale

    def record_payment(self, sale: Sale, amount: Decimal, method: PaymentMethod,
                       transaction_id: str = None, allow_overpayment: bool = False) -> Sale:
        """
        Record a payment against a sale loaded with repo.get_for_update().

        Refuses payments on cancelled sales and, unless allow_overpayment,
        amounts above what is still due.
        """
        if sale.status == SaleStatus.cancelled or not sale.is_active:
            raise PaymentError('Cannot add payment to a cancelled sale.')
        if sale.payment_status in CLOSED_PAYMENT_STATUSES:
            raise PaymentError(f'Cannot add payment to a {sale.payment_status.value} sale.')

        amount = money(amount)
        if not allow_overpayment and amount > money(sale.due_amount):
            raise PaymentError(
                f'Payment amount ({amount}) exceeds the due amount ({money(sale.due_amount)}).'
            )

        sale.apply_payment(amount, method, transaction_id)
        self.repo.save(sale)
        self.session.commit()
        logger.info(
            f"Payment of {amount} ({sale.payment_method.value}) recorded on {sale.sale_number}: "
            f"paid {sale.paid_amount}, due {sale.due_amount}, status {sale.payment_status.value}"
        )
        return sale

    def cancel_sale(self, sale: Sale, user_id: int = None) -> Sale:
        """Cancel a sale and return its quantities to stock."""
        if sale.status == SaleStatus.delivered:
            raise SaleError('Delivered sales cannot be cancelled.')
        if sale.status == SaleStatus.cancelled or not sale.is_active:
            raise SaleError(f'Sale {sale.sale_number} is already cancelled.')

        sale.status    = SaleStatus.cancelled
        sale.is_active = False
        restored = restore_stock_for_sale(self.session, sale, user_id=user_id)

        self.repo.save(sale)
        self.session.commit()
        logger.info(f"Sale {sale.sale_number} cancelled; stock restored for {restored} item(s)")
        return sale
