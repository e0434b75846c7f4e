from datetime import date, timedelta

from flask import request, jsonify, abort, current_app, session
from sqlalchemy.exc import IntegrityError

from vetclinic import db
from vetclinic.sales import sales
from vetclinic.sales.service import SaleService
from vetclinic.sales.stats import sales_statistics
from vetclinic.sales.validators import (
    validate_sale_create, validate_sale_update, validate_payment_request,
    parse_items, parse_payment_block, parse_payment_request,
    parse_customer, parse_delivery_date, parse_date_param,
)
from vetclinic.owners.models import Owner, Pet
from vetclinic.inventory.models import InventoryItem
from vetclinic.ledger import PaymentStatus, SaleStatus
from vetclinic.errors import SaleError
from vetclinic.auth.decorators import permission_required
from vetclinic.auth import permissions as perms
from vetclinic.utils.request import json_body


# ── Helpers ───────────────────────────────────────────────────────

def _service() -> SaleService:
    return SaleService(db.session, prefix=current_app.config['SALE_NUMBER_PREFIX'])


def _validation_error(errors):
    return jsonify({'success': False, 'message': 'Validation failed', 'errors': errors}), 400


def _get_sale_or_404(sale_id, for_update=False):
    repo = _service().repo
    sale = repo.get_for_update(sale_id) if for_update else repo.get(sale_id)
    if sale is None:
        abort(404, description='Sale not found')
    return sale


def _resolve_customer(customer: dict):
    """Owner and pet objects for a customer block; 404 when either is unknown."""
    owner_id, pet_id = parse_customer(customer)
    owner = db.session.get(Owner, owner_id)
    if owner is None or not owner.is_active:
        abort(404, description='Owner not found')

    pet = None
    if pet_id is not None:
        pet = db.session.get(Pet, pet_id)
        if pet is None or pet.owner_id != owner.id:
            abort(404, description='Pet not found or does not belong to this owner')
    return owner, pet


def _check_inventory_exists(lines):
    for line in lines:
        item = db.session.get(InventoryItem, line['inventory_id'])
        if item is None or not item.is_active:
            abort(404, description=f"Inventory item {line['inventory_id']} not found")


def _rollback_response(exc, action):
    """Translate a failed unit of work into a JSON error, the session rolled back."""
    db.session.rollback()
    if isinstance(exc, IntegrityError):
        current_app.logger.error(f"{action} rollback (IntegrityError): {exc}")
        return jsonify({'success': False, 'message': 'A database conflict occurred. Please try again.'}), 409
    current_app.logger.warning(f"{action} rollback ({type(exc).__name__}): {exc}")
    return jsonify({'success': False, 'message': str(exc)}), 400


def _page_args():
    default_limit = current_app.config['SALES_PAGE_SIZE']
    page  = max(request.args.get('page', 1, type=int) or 1, 1)
    limit = min(max(request.args.get('limit', default_limit, type=int) or default_limit, 1), 100)
    return page, limit


# ── LIST ──────────────────────────────────────────────────────────

@sales.route('/')
@permission_required(perms.READ_SALES)
def index():
    """Active sales, newest first, with filters, pagination and statistics."""
    args = request.args
    filters = {'search': args.get('search', '')}

    if args.get('status'):
        if args['status'] not in SaleStatus.__members__:
            abort(400, description='Invalid status filter')
        filters['status'] = SaleStatus(args['status'])
    if args.get('paymentStatus'):
        if args['paymentStatus'] not in PaymentStatus.__members__:
            abort(400, description='Invalid paymentStatus filter')
        filters['payment_status'] = PaymentStatus(args['paymentStatus'])
    if args.get('customerId'):
        filters['customer_id'] = args.get('customerId', type=int)
    if args.get('startDate') and args.get('endDate'):
        filters['start_date'] = parse_date_param(args['startDate'])
        filters['end_date']   = parse_date_param(args['endDate'])
        if filters['start_date'] is None or filters['end_date'] is None:
            abort(400, description='Dates must be YYYY-MM-DD')

    page, limit = _page_args()
    repo = _service().repo
    results, total = repo.list_sales(filters, page=page, limit=limit)

    return jsonify({
        'success': True,
        'data': {
            'sales': [s.to_dict() for s in results],
            'pagination': {
                'current': page,
                'pages':   (total + limit - 1) // limit,
                'total':   total,
                'limit':   limit,
            },
            'statistics': repo.statistics(filters),
        },
    })


# ── PENDING PAYMENTS ──────────────────────────────────────────────

@sales.route('/pending')
@permission_required(perms.READ_SALES)
def pending():
    repo = _service().repo
    pending_sales = repo.pending_payments()
    return jsonify({
        'success': True,
        'data': {
            'sales':       [s.to_dict() for s in pending_sales],
            'count':       len(pending_sales),
            'outstanding': float(repo.outstanding_total()),
        },
    })


# ── STATISTICS ────────────────────────────────────────────────────

@sales.route('/stats')
@permission_required(perms.VIEW_REPORTS)
def stats():
    """?period=<days> (default 30) or ?startDate=&endDate= (inclusive)."""
    start = parse_date_param(request.args.get('startDate'))
    end   = parse_date_param(request.args.get('endDate'))

    if not (start and end):
        period = request.args.get('period', 30, type=int) or 30
        end    = date.today()
        start  = end - timedelta(days=period)
    if start > end:
        abort(400, description='startDate must not be after endDate')

    return jsonify({'success': True, 'data': sales_statistics(db.session, start, end)})


# ── CREATE ────────────────────────────────────────────────────────

@sales.route('/', methods=['POST'])
@permission_required(perms.WRITE_SALES)
def create():
    """
    Create a confirmed sale:
      1. Validate the body (400)
      2. Resolve owner, pet and inventory items (404)
      3. Lock inventory rows, check stock, number, save, decrement stock,
         update the owner's spend, all in one transaction (400 on stock)
    """
    data = json_body()
    errors = validate_sale_create(data)
    if errors:
        return _validation_error(errors)

    owner, pet = _resolve_customer(data['customer'])
    lines = parse_items(data['items'])
    _check_inventory_exists(lines)

    try:
        sale = _service().create_sale(
            owner=owner,
            pet=pet,
            lines=lines,
            payment=parse_payment_block(data.get('payment')),
            sales_person_id=session['user_id'],
            notes=(data.get('notes') or '').strip() or None,
            delivery_date=parse_delivery_date(data.get('deliveryDate')),
        )
    except (SaleError, IntegrityError) as exc:
        return _rollback_response(exc, 'Sale create')

    return jsonify({
        'success': True,
        'message': 'Sale created successfully',
        'data':    {'sale': sale.to_dict()},
    }), 201


# ── DETAIL ────────────────────────────────────────────────────────

@sales.route('/<int:sale_id>')
@permission_required(perms.READ_SALES)
def detail(sale_id):
    sale = _get_sale_or_404(sale_id)
    return jsonify({'success': True, 'data': {'sale': sale.to_dict()}})


# ── UPDATE ────────────────────────────────────────────────────────

@sales.route('/<int:sale_id>', methods=['PUT'])
@permission_required(perms.WRITE_SALES)
def update(sale_id):
    data = json_body()
    errors = validate_sale_update(data)
    if errors:
        return _validation_error(errors)

    sale = _get_sale_or_404(sale_id, for_update=True)
    changes = {}

    if 'customer' in data:
        customer = dict(data['customer'])
        if customer.get('owner') is None:
            customer['owner'] = sale.owner_id
        owner, pet = _resolve_customer(customer)
        changes['owner'] = owner
        changes['pet']   = pet
    if 'status' in data:
        changes['status'] = SaleStatus(data['status'])
    if 'notes' in data:
        changes['notes'] = (data.get('notes') or '').strip() or None
    if 'deliveryDate' in data:
        changes['delivery_date'] = parse_delivery_date(data.get('deliveryDate'))
    if 'items' in data:
        changes['lines'] = parse_items(data['items'])
        _check_inventory_exists(changes['lines'])
    if 'payment' in data:
        changes['payment'] = parse_payment_block(data['payment'])

    try:
        sale = _service().update_sale(sale, changes, user_id=session['user_id'])
    except (SaleError, IntegrityError) as exc:
        return _rollback_response(exc, f'Sale {sale_id} update')

    return jsonify({
        'success': True,
        'message': 'Sale updated successfully',
        'data':    {'sale': sale.to_dict()},
    })


# ── CANCEL ────────────────────────────────────────────────────────

@sales.route('/<int:sale_id>', methods=['DELETE'])
@permission_required(perms.DELETE_SALES)
def cancel(sale_id):
    """Soft delete: status cancelled, inactive, stock restored."""
    sale = _get_sale_or_404(sale_id, for_update=True)
    try:
        _service().cancel_sale(sale, user_id=session['user_id'])
    except (SaleError, IntegrityError) as exc:
        return _rollback_response(exc, f'Sale {sale_id} cancel')

    return jsonify({'success': True, 'message': 'Sale cancelled successfully'})


# ── PAYMENTS ──────────────────────────────────────────────────────

@sales.route('/<int:sale_id>/payments', methods=['POST'])
@permission_required(perms.PROCESS_PAYMENTS)
def add_payment(sale_id):
    data = json_body()
    errors = validate_payment_request(data)
    if errors:
        return _validation_error(errors)

    payment = parse_payment_request(data)
    sale = _get_sale_or_404(sale_id, for_update=True)
    try:
        sale = _service().record_payment(
            sale,
            amount=payment['amount'],
            method=payment['method'],
            transaction_id=payment['transaction_id'],
        )
    except (SaleError, IntegrityError) as exc:
        return _rollback_response(exc, f'Sale {sale_id} payment')

    return jsonify({
        'success': True,
        'message': 'Payment added successfully',
        'data':    {'sale': sale.to_dict()},
    })
