"""
vetclinic/inventory/validators.py
---------------------------------
Pure-Python validation for inventory item payloads.
Returns a dict of field -> error_message.
An empty dict means all fields are valid.
"""
import re
from decimal import Decimal, InvalidOperation

from vetclinic.inventory.models import CATEGORIES
from vetclinic.ledger import GSTType

SKU_RE = re.compile(r'^[A-Z0-9-]+$')
HSN_RE = re.compile(r'^[0-9]{4,8}$')
SAC_RE = re.compile(r'^[0-9]{6}$')


def _text(data, key, default=''):
    value = data.get(key, default)
    return str(value).strip() if value is not None else ''


def validate_inventory_payload(data: dict) -> dict:
    """
    Validate a JSON body for creating an inventory item.

    Returns:
        dict of {field_name: error_message} — empty if all valid.
    """
    errors = {}

    # ── name ──────────────────────────────────────────────────────
    name = _text(data, 'name')
    if not name:
        errors['name'] = 'Product name is required.'
    elif len(name) > 100:
        errors['name'] = 'Product name cannot exceed 100 characters.'

    # ── sku ───────────────────────────────────────────────────────
    sku = _text(data, 'sku').upper()
    if not sku:
        errors['sku'] = 'SKU is required.'
    elif not SKU_RE.match(sku):
        errors['sku'] = 'SKU must contain only uppercase letters, numbers, and hyphens.'

    # ── category ──────────────────────────────────────────────────
    category = _text(data, 'category', 'other').lower()
    if category not in CATEGORIES:
        errors['category'] = f'Category must be one of: {", ".join(CATEGORIES)}.'

    # ── price / cost ──────────────────────────────────────────────
    for field, required in (('price', True), ('cost', False)):
        raw = _text(data, field)
        if not raw:
            if required:
                errors[field] = f'{field.title()} is required.'
            continue
        try:
            if Decimal(raw) < 0:
                errors[field] = f'{field.title()} cannot be negative.'
        except InvalidOperation:
            errors[field] = f'{field.title()} must be a valid number.'

    # ── quantity / minStockLevel ──────────────────────────────────
    for field in ('quantity', 'minStockLevel'):
        raw = _text(data, field, '0') or '0'
        try:
            if int(raw) < 0:
                errors[field] = 'Value cannot be negative.'
        except ValueError:
            errors[field] = 'Value must be a whole number.'

    # ── gst ───────────────────────────────────────────────────────
    gst = data.get('gst') or {}
    if not isinstance(gst, dict):
        errors['gst'] = 'GST settings must be an object.'
        return errors

    rate_raw = _text(gst, 'gstRate', '18') or '18'
    try:
        rate = Decimal(rate_raw)
        if not (0 <= rate <= 100):
            errors['gst.gstRate'] = 'GST rate must be between 0 and 100.'
    except InvalidOperation:
        errors['gst.gstRate'] = 'GST rate must be a valid number.'

    gst_type = _text(gst, 'gstType', GSTType.CGST_SGST.value).replace('+', '_')
    if gst_type not in GSTType.__members__:
        errors['gst.gstType'] = f'GST type must be one of: {", ".join(GSTType.__members__)}.'

    hsn = _text(gst, 'hsnCode')
    if hsn and not HSN_RE.match(hsn):
        errors['gst.hsnCode'] = 'HSN code must be 4-8 digits.'

    sac = _text(gst, 'sacCode')
    if sac and not SAC_RE.match(sac):
        errors['gst.sacCode'] = 'SAC code must be 6 digits.'

    return errors


def parse_inventory_payload(data: dict, default_gst_rate=18) -> dict:
    """
    Convert a validated payload to InventoryItem column values.
    Call only after validate_inventory_payload returns no errors.
    """
    gst = data.get('gst') or {}
    cost_raw = _text(data, 'cost')
    return {
        'name':              _text(data, 'name'),
        'sku':               _text(data, 'sku').upper(),
        'category':          _text(data, 'category', 'other').lower(),
        'description':       _text(data, 'description') or None,
        'price':             Decimal(_text(data, 'price')),
        'cost':              Decimal(cost_raw) if cost_raw else None,
        'quantity':          int(_text(data, 'quantity', '0') or '0'),
        'min_stock_level':   int(_text(data, 'minStockLevel', '5') or '5'),
        'is_gst_applicable': bool(gst.get('isGSTApplicable', True)),
        'gst_rate':          Decimal(_text(gst, 'gstRate') or str(default_gst_rate)),
        'gst_type':          GSTType(_text(gst, 'gstType', 'CGST_SGST').replace('+', '_')),
        'hsn_code':          _text(gst, 'hsnCode') or None,
        'sac_code':          _text(gst, 'sacCode') or None,
    }
