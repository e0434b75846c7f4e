from flask import request, jsonify, abort, current_app, session
from sqlalchemy.exc import IntegrityError

from vetclinic import db
from vetclinic.inventory import inventory
from vetclinic.inventory.models import InventoryItem, StockMovement, MovementType
from vetclinic.inventory.validators import validate_inventory_payload, parse_inventory_payload
from vetclinic.auth.decorators import permission_required
from vetclinic.auth import permissions as perms
from vetclinic.utils.request import json_body


# ── LIST ──────────────────────────────────────────────────────────────────────

@inventory.route('/')
@permission_required(perms.READ_INVENTORY)
def index():
    """List active items ordered by name; ?lowStock=true and ?search= narrow it."""
    query = InventoryItem.query.filter(InventoryItem.is_active.is_(True))

    search = request.args.get('search', '').strip()
    if search:
        query = query.filter(
            (InventoryItem.name.ilike(f'%{search}%')) |
            (InventoryItem.sku.ilike(f'%{search}%'))
        )
    if request.args.get('lowStock', '').lower() in ('1', 'true', 'yes'):
        query = query.filter(InventoryItem.quantity <= InventoryItem.min_stock_level)

    items = query.order_by(InventoryItem.name.asc()).all()
    return jsonify({'success': True, 'data': {'items': [i.to_dict() for i in items]}})


# ── CREATE ────────────────────────────────────────────────────────────────────

@inventory.route('/', methods=['POST'])
@permission_required(perms.WRITE_INVENTORY)
def create():
    data = json_body()
    errors = validate_inventory_payload(data)

    if not errors:
        # Fast path; the unique index still guards the race below
        if InventoryItem.query.filter_by(sku=str(data['sku']).strip().upper()).first():
            errors['sku'] = 'An item with this SKU already exists.'

    if errors:
        return jsonify({'success': False, 'message': 'Validation failed', 'errors': errors}), 400

    item = InventoryItem(**parse_inventory_payload(data, current_app.config['DEFAULT_GST_RATE']))
    try:
        db.session.add(item)
        db.session.flush()  # get ID

        # Log opening stock
        if item.quantity > 0:
            db.session.add(StockMovement(
                inventory_id=item.id,
                type=MovementType.purchase,
                quantity=item.quantity,
                user_id=session.get('user_id'),
                reference='OPENING',
                notes='Initial stock (item created)',
            ))

        db.session.commit()
    except IntegrityError:
        # Another request inserted the same SKU between our check and this commit
        db.session.rollback()
        return jsonify({
            'success': False,
            'message': 'Validation failed',
            'errors': {'sku': 'An item with this SKU already exists.'},
        }), 409

    current_app.logger.info(f"Inventory item created: {item.name} ({item.sku})")
    return jsonify({
        'success': True,
        'message': 'Inventory item created successfully',
        'data': {'item': item.to_dict()},
    }), 201


# ── DETAIL ────────────────────────────────────────────────────────────────────

@inventory.route('/<int:item_id>')
@permission_required(perms.READ_INVENTORY)
def detail(item_id):
    """One item plus its most recent stock movements."""
    item = db.session.get(InventoryItem, item_id)
    if item is None:
        abort(404, description='Inventory item not found')

    movements = item.movements.limit(100).all()
    return jsonify({
        'success': True,
        'data': {
            'item': item.to_dict(),
            'stockMovements': [m.to_dict() for m in movements],
        },
    })
