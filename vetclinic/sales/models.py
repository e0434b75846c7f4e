from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import validates

from vetclinic import db
from vetclinic.errors import PaymentError, SaleError
from vetclinic.ledger import (
    DiscountType, GSTType, PaymentMethod, PaymentStatus, SaleStatus,
    compute_line, compute_totals, due_amount, gst_split, money, settle_payment,
)


def _iso(value):
    return value.isoformat() if value else None


def _num(value):
    """Decimal → JSON number (the admin UI does arithmetic on these)."""
    return float(value) if value is not None else 0.0


class SaleSequence(db.Model):
    """
    One row per (prefix, year-month), holding the last-used sequence number.
    Changing SALE_NUMBER_PREFIX starts a fresh count for the new prefix.

    The row is locked with SELECT … FOR UPDATE while a number is allocated,
    so two sales created in the same month can't both read the same
    maximum and collide on SAL-YYYYMM-NNNN.
    """
    __tablename__ = 'sale_sequences'

    prefix   = db.Column(db.String(10), primary_key=True)  # e.g. "SAL"
    period   = db.Column(db.String(6), primary_key=True)   # e.g. "202610"
    last_seq = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<SaleSequence prefix={self.prefix} period={self.period} last_seq={self.last_seq}>"


class Sale(db.Model):
    """
    One sale of inventory items to a pet owner.
    A Sale has many SaleItems; its totals and due amount are derived from
    them by recalculate(), which the repository calls before every write.
    """
    __tablename__ = 'sales'

    id              = db.Column(db.Integer, primary_key=True)
    sale_number     = db.Column(db.String(20), unique=True, nullable=False, index=True)

    # ── Customer ──────────────────────────────────────────────────
    owner_id        = db.Column(db.Integer, db.ForeignKey('owners.id'), nullable=False, index=True)
    pet_id          = db.Column(db.Integer, db.ForeignKey('pets.id'), nullable=True)

    # ── Totals (derived) ──────────────────────────────────────────
    subtotal        = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    total_discount  = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    total_taxable   = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    total_gst       = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    grand_total     = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))

    # ── Payment ───────────────────────────────────────────────────
    payment_method  = db.Column(db.Enum(PaymentMethod), nullable=False, default=PaymentMethod.cash)
    payment_status  = db.Column(db.Enum(PaymentStatus), nullable=False,
                                default=PaymentStatus.pending, index=True)
    paid_amount     = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    due_amount      = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    transaction_id  = db.Column(db.String(100), nullable=True)
    payment_date    = db.Column(db.DateTime, nullable=True)
    due_date        = db.Column(db.Date, nullable=True)

    # ── Lifecycle ─────────────────────────────────────────────────
    status          = db.Column(db.Enum(SaleStatus), nullable=False, default=SaleStatus.draft, index=True)
    sales_person_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    sale_date       = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    delivery_date   = db.Column(db.DateTime, nullable=True)
    notes           = db.Column(db.String(1000), nullable=True)
    invoice_ref     = db.Column(db.String(40), nullable=True)    # external invoice number
    is_active       = db.Column(db.Boolean, nullable=False, default=True)
    created_at      = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at      = db.Column(db.DateTime, nullable=False, default=datetime.utcnow,
                                onupdate=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint('paid_amount >= 0', name='check_sale_paid_non_negative'),
        db.CheckConstraint('due_amount >= 0', name='check_sale_due_non_negative'),
    )

    # ── Relationships ─────────────────────────────────────────────
    owner        = db.relationship('Owner', backref=db.backref('sales', lazy='dynamic'), lazy='select')
    pet          = db.relationship('Pet', lazy='select')
    sales_person = db.relationship('User', lazy='select')
    items        = db.relationship('SaleItem', backref='sale', lazy='select',
                                   order_by='SaleItem.position',
                                   collection_class=ordering_list('position'),
                                   cascade='all, delete-orphan')

    def __init__(self, **kwargs):
        # Column defaults only apply at INSERT; the ledger needs them on
        # transient objects too.
        kwargs.setdefault('paid_amount', Decimal('0.00'))
        kwargs.setdefault('due_amount', Decimal('0.00'))
        kwargs.setdefault('payment_status', PaymentStatus.pending)
        kwargs.setdefault('payment_method', PaymentMethod.cash)
        kwargs.setdefault('status', SaleStatus.draft)
        kwargs.setdefault('is_active', True)
        super().__init__(**kwargs)

    @validates('sale_number')
    def _freeze_sale_number(self, key, value):
        if self.sale_number is not None and value != self.sale_number:
            raise SaleError(f'Sale number {self.sale_number} is already assigned.')
        return value

    # ── Ledger ────────────────────────────────────────────────────
    def recalculate(self) -> None:
        """
        Re-derive every line's amounts, the sale totals and the due amount.
        Unconditional: nothing is cached between calls.
        """
        items = self.items
        if isinstance(items, list):
            for item in items:
                item.recalculate()

        totals = compute_totals(items)
        self.subtotal       = totals.subtotal
        self.total_discount = totals.total_discount
        self.total_taxable  = totals.total_taxable
        self.total_gst      = totals.total_gst
        self.grand_total    = totals.grand_total
        self.due_amount     = due_amount(self.grand_total, self.paid_amount)

    def apply_payment(self, amount, method, transaction_id=None) -> None:
        """
        Add `amount` to the running paid total and move the payment status
        forward. Does not check against the due amount — callers that must
        refuse overpayment do so before calling. The caller persists.
        """
        amount = money(amount)
        if amount <= 0:
            raise PaymentError('Payment amount must be greater than zero.')
        if isinstance(method, str):
            method = PaymentMethod(method)

        new_paid = money(self.paid_amount) + amount
        status, due = settle_payment(self.payment_status, new_paid, self.grand_total)

        self.paid_amount    = new_paid
        self.payment_method = method
        self.transaction_id = transaction_id
        self.payment_date   = datetime.utcnow()
        self.payment_status = status
        self.due_amount     = due

    # ── Computed helpers ──────────────────────────────────────────
    @property
    def customer_name(self) -> str:
        if self.owner is not None:
            return self.owner.full_name
        return 'Unknown Customer'

    @property
    def total_items(self) -> int:
        return sum(item.quantity or 0 for item in self.items or [])

    def to_dict(self) -> dict:
        return {
            'id':           self.id,
            'saleNumber':   self.sale_number,
            'customer': {
                'owner': self.owner_id,
                'pet':   self.pet_id,
            },
            'customerName': self.customer_name,
            'items':        [item.to_dict() for item in self.items],
            'totalItems':   self.total_items,
            'totals': {
                'subtotal':      _num(self.subtotal),
                'totalDiscount': _num(self.total_discount),
                'totalTaxable':  _num(self.total_taxable),
                'totalGST':      _num(self.total_gst),
                'grandTotal':    _num(self.grand_total),
            },
            'payment': {
                'method':        self.payment_method.value if self.payment_method else None,
                'status':        self.payment_status.value,
                'paidAmount':    _num(self.paid_amount),
                'dueAmount':     _num(self.due_amount),
                'transactionId': self.transaction_id,
                'paymentDate':   _iso(self.payment_date),
                'dueDate':       _iso(self.due_date),
            },
            'status':       self.status.value,
            'salesPerson':  self.sales_person_id,
            'saleDate':     _iso(self.sale_date),
            'deliveryDate': _iso(self.delivery_date),
            'notes':        self.notes,
            'invoice':      self.invoice_ref,
            'isActive':     self.is_active,
            'createdAt':    _iso(self.created_at),
            'updatedAt':    _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Sale {self.sale_number!r} ₹{self.grand_total} {self.payment_status.value}>"


class SaleItem(db.Model):
    """
    One line item inside a Sale.
    Name, SKU, price and GST settings are snapshots taken at sale time,
    so later inventory edits don't alter historical sales.
    """
    __tablename__ = 'sale_items'

    id              = db.Column(db.Integer, primary_key=True)
    sale_id         = db.Column(db.Integer, db.ForeignKey('sales.id'), nullable=False, index=True)
    position        = db.Column(db.Integer, nullable=False, default=0)
    inventory_id    = db.Column(db.Integer, db.ForeignKey('inventory_items.id'), nullable=False, index=True)
    name            = db.Column(db.String(100), nullable=False)
    sku             = db.Column(db.String(40), nullable=False)
    quantity        = db.Column(db.Integer, nullable=False)
    unit_price      = db.Column(db.Numeric(10, 2), nullable=False)
    discount        = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal('0'))
    discount_type   = db.Column(db.Enum(DiscountType), nullable=False, default=DiscountType.percentage)

    # ── GST snapshot ──────────────────────────────────────────────
    gst_applicable  = db.Column(db.Boolean, nullable=False, default=True)
    gst_rate        = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal('18'))
    gst_type        = db.Column(db.Enum(GSTType), nullable=False, default=GSTType.CGST_SGST)
    hsn_code        = db.Column(db.String(8), nullable=True)
    sac_code        = db.Column(db.String(6), nullable=True)

    # ── Derived (recalculate() only, never hand-set) ──────────────
    subtotal        = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    taxable_amount  = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    gst_amount      = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    total           = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))

    notes           = db.Column(db.String(500), nullable=True)

    __table_args__ = (
        db.CheckConstraint('quantity >= 1', name='check_sale_item_qty_positive'),
        db.CheckConstraint('unit_price >= 0', name='check_sale_item_price_non_negative'),
        db.CheckConstraint('discount >= 0', name='check_sale_item_discount_non_negative'),
        db.CheckConstraint('gst_rate >= 0 AND gst_rate <= 100', name='check_sale_item_gst_valid'),
    )

    inventory_item = db.relationship('InventoryItem', lazy='select')

    def __init__(self, **kwargs):
        kwargs.setdefault('discount', Decimal('0'))
        kwargs.setdefault('discount_type', DiscountType.percentage)
        kwargs.setdefault('gst_applicable', True)
        kwargs.setdefault('gst_rate', Decimal('18'))
        kwargs.setdefault('gst_type', GSTType.CGST_SGST)
        super().__init__(**kwargs)

    def recalculate(self) -> None:
        amounts = compute_line(
            quantity=self.quantity or 0,
            unit_price=self.unit_price,
            discount=self.discount,
            discount_type=self.discount_type,
            gst_applicable=self.gst_applicable,
            gst_rate=self.gst_rate,
        )
        self.subtotal        = amounts.subtotal
        self.discount_amount = amounts.discount_amount
        self.taxable_amount  = amounts.taxable_amount
        self.gst_amount      = amounts.gst_amount
        self.total           = amounts.total

    def to_dict(self) -> dict:
        split = gst_split(self.gst_amount or 0, self.gst_type)
        return {
            'id':             self.id,
            'inventory':      self.inventory_id,
            'name':           self.name,
            'sku':            self.sku,
            'quantity':       self.quantity,
            'unitPrice':      _num(self.unit_price),
            'discount':       _num(self.discount),
            'discountType':   self.discount_type.value,
            'gst': {
                'isApplicable': self.gst_applicable,
                'rate':         _num(self.gst_rate),
                'type':         self.gst_type.value,
                'hsnCode':      self.hsn_code,
                'sacCode':      self.sac_code,
                'cgst':         _num(split['cgst']),
                'sgst':         _num(split['sgst']),
                'igst':         _num(split['igst']),
            },
            'subtotal':       _num(self.subtotal),
            'discountAmount': _num(self.discount_amount),
            'taxableAmount':  _num(self.taxable_amount),
            'gstAmount':      _num(self.gst_amount),
            'total':          _num(self.total),
            'notes':          self.notes,
        }

    def __repr__(self):
        return f"<SaleItem sale={self.sale_id} inventory={self.inventory_id} qty={self.quantity}>"
