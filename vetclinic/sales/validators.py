"""
vetclinic/sales/validators.py
-----------------------------
Pure-Python validation for sale and payment request bodies.

Each validate_* function returns a dict of field -> error_message
(empty dict = valid). The matching parse_* function converts the validated
raw JSON into typed values (Decimal, enums, dates) for the sale service.
"""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from vetclinic.ledger import DiscountType, PaymentMethod, SaleStatus

NO_PET = (None, '', 'none')


def _decimal(value):
    """Decimal for a JSON number/string, or None when it isn't one."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def _int(value):
    if isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite() or number != number.to_integral_value():
        return None
    return int(number)


def _is_member(value, enum_cls) -> bool:
    return isinstance(value, str) and value in enum_cls.__members__


def _bad_text(value, limit: int) -> bool:
    """True when an optional text field is not a string or runs past limit."""
    if value is None:
        return False
    return not isinstance(value, str) or len(value) > limit


def _date(value):
    """ISO date or datetime string → datetime, or None when invalid."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00')).replace(tzinfo=None)
    except ValueError:
        return None


# ── Line items ────────────────────────────────────────────────────

def validate_items(items) -> dict:
    """Validate the `items` array of a create/update body."""
    if not isinstance(items, list) or not items:
        return {'items': 'At least one item is required.'}

    errors = {}
    for index, item in enumerate(items):
        key = f'items[{index}]'
        if not isinstance(item, dict):
            errors[key] = 'Item must be an object.'
            continue

        if _int(item.get('inventory')) is None:
            errors[f'{key}.inventory'] = 'Inventory item is required.'

        quantity = _int(item.get('quantity'))
        if quantity is None or quantity < 1:
            errors[f'{key}.quantity'] = 'Quantity must be a whole number of at least 1.'

        if item.get('unitPrice') is not None:
            price = _decimal(item.get('unitPrice'))
            if price is None or price < 0:
                errors[f'{key}.unitPrice'] = 'Unit price cannot be negative.'

        discount_type = item.get('discountType') or DiscountType.percentage.value
        if not _is_member(discount_type, DiscountType):
            errors[f'{key}.discountType'] = 'Discount type must be percentage or fixed.'

        discount = _decimal(item.get('discount', 0) or 0)
        if discount is None or discount < 0:
            errors[f'{key}.discount'] = 'Discount cannot be negative.'
        elif discount_type == DiscountType.percentage.value and discount > 100:
            errors[f'{key}.discount'] = 'Percentage discount cannot exceed 100.'

        if _bad_text(item.get('notes'), 500):
            errors[f'{key}.notes'] = 'Notes must be text of at most 500 characters.'

    return errors


def parse_items(items) -> list:
    """
    Typed line requests: inventory id, quantity, optional unit price
    override, discount, discount type, notes.
    """
    lines = []
    for item in items:
        unit_price = item.get('unitPrice')
        lines.append({
            'inventory_id':  _int(item['inventory']),
            'quantity':      _int(item['quantity']),
            'unit_price':    _decimal(unit_price) if unit_price is not None else None,
            'discount':      _decimal(item.get('discount', 0) or 0),
            'discount_type': DiscountType(item.get('discountType') or 'percentage'),
            'notes':         (item.get('notes') or '').strip() or None,
        })
    return lines


# ── Payment blocks ────────────────────────────────────────────────

def validate_payment_block(payment) -> dict:
    """The optional `payment` object of a create/update body."""
    if payment is None:
        return {}
    if not isinstance(payment, dict):
        return {'payment': 'Payment must be an object.'}

    errors = {}
    paid = _decimal(payment.get('paidAmount', 0) or 0)
    if paid is None:
        errors['payment.paidAmount'] = 'Paid amount must be a number.'

    method = payment.get('method')
    if method and not _is_member(method, PaymentMethod):
        errors['payment.method'] = f'Payment method must be one of: {", ".join(PaymentMethod.__members__)}.'

    if _bad_text(payment.get('transactionId'), 100):
        errors['payment.transactionId'] = 'Transaction ID must be text.'

    if payment.get('dueDate') and _date(payment['dueDate']) is None:
        errors['payment.dueDate'] = 'Due date must be an ISO date.'

    return errors


def parse_payment_block(payment) -> dict:
    payment = payment or {}
    paid = _decimal(payment.get('paidAmount', 0) or 0)
    due_date = _date(payment.get('dueDate'))
    return {
        # Negative paid amounts are floored at zero, never rejected
        'paid_amount':    max(paid, Decimal('0')),
        'method':         PaymentMethod(payment['method']) if payment.get('method') else None,
        'transaction_id': (payment.get('transactionId') or '').strip() or None,
        'due_date':       due_date.date() if due_date else None,
    }


def validate_payment_request(data: dict) -> dict:
    """Body of POST /api/sales/<id>/payments."""
    errors = {}
    amount = _decimal(data.get('amount'))
    if amount is None or amount <= 0:
        errors['amount'] = 'Valid payment amount is required.'

    method = data.get('method')
    if not method:
        errors['method'] = 'Payment method is required.'
    elif not _is_member(method, PaymentMethod):
        errors['method'] = f'Payment method must be one of: {", ".join(PaymentMethod.__members__)}.'

    if _bad_text(data.get('transactionId'), 100):
        errors['transactionId'] = 'Transaction ID must be text.'

    return errors


def parse_payment_request(data: dict) -> dict:
    return {
        'amount':         _decimal(data['amount']),
        'method':         PaymentMethod(data['method']),
        'transaction_id': (data.get('transactionId') or '').strip() or None,
    }


# ── Whole bodies ──────────────────────────────────────────────────

def validate_sale_create(data: dict) -> dict:
    errors = {}
    customer = data.get('customer')
    if not isinstance(customer, dict) or _int(customer.get('owner')) is None:
        errors['customer.owner'] = 'Customer owner is required.'
    elif customer.get('pet') not in NO_PET and _int(customer.get('pet')) is None:
        errors['customer.pet'] = 'Invalid pet ID format.'

    errors.update(validate_items(data.get('items')))
    errors.update(validate_payment_block(data.get('payment')))

    if _bad_text(data.get('notes'), 1000):
        errors['notes'] = 'Notes must be text of at most 1000 characters.'
    if data.get('deliveryDate') and _date(data['deliveryDate']) is None:
        errors['deliveryDate'] = 'Delivery date must be an ISO date.'

    return errors


def validate_sale_update(data: dict) -> dict:
    """PUT bodies: every field optional, present fields validated like create."""
    errors = {}
    if 'customer' in data:
        customer = data['customer']
        if not isinstance(customer, dict):
            errors['customer'] = 'Customer must be an object.'
        else:
            if customer.get('owner') is not None and _int(customer['owner']) is None:
                errors['customer.owner'] = 'Invalid owner ID.'
            if customer.get('pet') not in NO_PET and _int(customer.get('pet')) is None:
                errors['customer.pet'] = 'Invalid pet ID format.'

    if 'status' in data and not _is_member(data['status'], SaleStatus):
        errors['status'] = f'Status must be one of: {", ".join(SaleStatus.__members__)}.'

    if 'items' in data:
        errors.update(validate_items(data['items']))
    if 'payment' in data:
        errors.update(validate_payment_block(data['payment']))

    if _bad_text(data.get('notes'), 1000):
        errors['notes'] = 'Notes must be text of at most 1000 characters.'
    if data.get('deliveryDate') and _date(data['deliveryDate']) is None:
        errors['deliveryDate'] = 'Delivery date must be an ISO date.'

    return errors


def parse_customer(customer: dict) -> tuple:
    """(owner_id, pet_id) — pet is None for absent/'none'/empty."""
    owner_id = _int(customer.get('owner')) if customer.get('owner') is not None else None
    pet = customer.get('pet')
    pet_id = None if pet in NO_PET else _int(pet)
    return owner_id, pet_id


def parse_delivery_date(value):
    return _date(value)


def parse_date_param(value):
    """Query-string dates for list/stats filters."""
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None
