import enum
from datetime import datetime
from decimal import Decimal
from vetclinic import db
from vetclinic.ledger import GSTType

CATEGORIES = (
    'food', 'treats', 'toys', 'medication', 'supplies',
    'grooming', 'accessories', 'health', 'cleaning', 'other',
)


class MovementType(enum.Enum):
    sale       = 'sale'
    purchase   = 'purchase'
    adjustment = 'adjustment'
    ret        = 'return'
    damage     = 'damage'
    expired    = 'expired'


class InventoryItem(db.Model):
    """A stocked product or consumable the clinic sells."""
    __tablename__ = 'inventory_items'

    id              = db.Column(db.Integer, primary_key=True)
    name            = db.Column(db.String(100), nullable=False, index=True)
    sku             = db.Column(db.String(40), unique=True, nullable=False, index=True)
    category        = db.Column(db.String(30), nullable=False, default='other')
    description     = db.Column(db.String(500), nullable=True)
    price           = db.Column(db.Numeric(10, 2), nullable=False)
    cost            = db.Column(db.Numeric(10, 2), nullable=True)
    quantity        = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=False, default=5)
    total_sold      = db.Column(db.Integer, nullable=False, default=0)
    last_sale_date  = db.Column(db.DateTime, nullable=True)
    is_active       = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # ── GST settings (copied onto each sale line at sale time) ──
    is_gst_applicable = db.Column(db.Boolean, nullable=False, default=True)
    gst_rate          = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal('18'))
    gst_type          = db.Column(db.Enum(GSTType), nullable=False, default=GSTType.CGST_SGST)
    hsn_code          = db.Column(db.String(8), nullable=True)
    sac_code          = db.Column(db.String(6), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow,
                           onupdate=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint('quantity >= 0', name='check_inventory_qty_non_negative'),
        db.CheckConstraint('price >= 0', name='check_inventory_price_non_negative'),
        db.CheckConstraint('gst_rate >= 0 AND gst_rate <= 100', name='check_inventory_gst_valid'),
    )

    movements = db.relationship('StockMovement', backref='inventory_item', lazy='dynamic',
                                order_by='StockMovement.date.desc()')

    @property
    def is_low_stock(self) -> bool:
        """True when quantity is at or below the item's minimum stock level."""
        return self.quantity <= self.min_stock_level

    def to_dict(self) -> dict:
        return {
            'id':            self.id,
            'name':          self.name,
            'sku':           self.sku,
            'category':      self.category,
            'description':   self.description,
            'price':         float(self.price),
            'cost':          float(self.cost) if self.cost is not None else None,
            'quantity':      self.quantity,
            'minStockLevel': self.min_stock_level,
            'totalSold':     self.total_sold,
            'lastSaleDate':  self.last_sale_date.isoformat() if self.last_sale_date else None,
            'isLowStock':    self.is_low_stock,
            'isActive':      self.is_active,
            'gst': {
                'isGSTApplicable': self.is_gst_applicable,
                'gstRate':         float(self.gst_rate),
                'gstType':         self.gst_type.value,
                'hsnCode':         self.hsn_code,
                'sacCode':         self.sac_code,
            },
        }

    def __repr__(self):
        return f"<InventoryItem {self.sku!r} {self.name!r} qty={self.quantity}>"


class StockMovement(db.Model):
    """
    Audit trail for stock changes.
    quantity is signed: negative for stock leaving (sales), positive for stock coming in.
    """
    __tablename__ = 'stock_movements'

    id           = db.Column(db.Integer, primary_key=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey('inventory_items.id'), nullable=False, index=True)
    type         = db.Column(db.Enum(MovementType), nullable=False)
    quantity     = db.Column(db.Integer, nullable=False)
    date         = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    user_id      = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    reference    = db.Column(db.String(40), nullable=True)   # sale number, PO number, …
    notes        = db.Column(db.String(255), nullable=True)

    user = db.relationship('User', lazy='select')

    def to_dict(self) -> dict:
        return {
            'id':        self.id,
            'type':      self.type.value,
            'quantity':  self.quantity,
            'date':      self.date.isoformat() if self.date else None,
            'user':      self.user_id,
            'reference': self.reference,
            'notes':     self.notes,
        }

    def __repr__(self):
        return f"<StockMovement {self.type.value} item={self.inventory_id} {self.quantity:+d} ({self.reference})>"
