"""
test_inventory.py — Inventory API and payload validation.
Run: pytest test_inventory.py -v
"""
import os
os.environ['FLASK_RUN_FROM_CLI'] = '1'

import pytest
from decimal import Decimal

from vetclinic import create_app, db
from vetclinic.auth.models import User, RoleEnum
from vetclinic.inventory.models import InventoryItem, StockMovement, MovementType
from vetclinic.inventory.validators import validate_inventory_payload, parse_inventory_payload
from vetclinic.ledger import GSTType


# ── Fixtures ──────────────────────────────────────────────────────

@pytest.fixture(scope='function')
def client():
    app = create_app('testing')
    with app.app_context():
        db.create_all()

        for username, role in [('admin', RoleEnum.admin), ('desk', RoleEnum.staff)]:
            user = User(username=username, name=username.title(), role=role)
            user.set_password('pass123')
            db.session.add(user)
        db.session.commit()

        yield app.test_client()
        db.drop_all()


def login(client, username='admin'):
    client.post('/auth/login', json={'username': username, 'password': 'pass123'})


def payload(**overrides):
    data = {
        'name': 'Puppy Kibble 3kg',
        'sku': 'food-001',
        'category': 'Food',
        'price': '1450',
        'cost': '1100',
        'quantity': 12,
        'minStockLevel': 4,
        'gst': {'isGSTApplicable': True, 'gstRate': 18, 'gstType': 'CGST+SGST', 'hsnCode': '2309'},
    }
    data.update(overrides)
    return data


# ── Validation ────────────────────────────────────────────────────

def test_valid_payload_parses():
    assert validate_inventory_payload(payload()) == {}
    values = parse_inventory_payload(payload())
    assert values['sku'] == 'FOOD-001'
    assert values['category'] == 'food'
    assert values['price'] == Decimal('1450')
    assert values['gst_type'] == GSTType.CGST_SGST
    assert values['gst_rate'] == Decimal('18')


def test_default_gst_rate_applies_when_missing():
    values = parse_inventory_payload(payload(gst={}), default_gst_rate=12)
    assert values['gst_rate'] == Decimal('12')


@pytest.mark.parametrize('overrides,field', [
    ({'name': ''}, 'name'),
    ({'sku': 'bad sku!'}, 'sku'),
    ({'category': 'weapons'}, 'category'),
    ({'price': '-1'}, 'price'),
    ({'price': 'abc'}, 'price'),
    ({'quantity': -3}, 'quantity'),
    ({'gst': {'gstRate': 150}}, 'gst.gstRate'),
    ({'gst': {'gstType': 'VAT'}}, 'gst.gstType'),
    ({'gst': {'hsnCode': '12'}}, 'gst.hsnCode'),
    ({'gst': {'sacCode': '12345'}}, 'gst.sacCode'),
])
def test_invalid_payloads(overrides, field):
    assert field in validate_inventory_payload(payload(**overrides))


# ── API ───────────────────────────────────────────────────────────

def test_create_item_records_opening_stock(client):
    login(client)
    resp = client.post('/api/inventory/', json=payload())
    assert resp.status_code == 201
    item = resp.get_json()['data']['item']
    assert item['sku'] == 'FOOD-001'
    assert item['quantity'] == 12
    assert item['gst']['hsnCode'] == '2309'

    movement = StockMovement.query.one()
    assert movement.type == MovementType.purchase
    assert movement.quantity == 12
    assert movement.reference == 'OPENING'


def test_duplicate_sku_rejected(client):
    login(client)
    client.post('/api/inventory/', json=payload())
    resp = client.post('/api/inventory/', json=payload(name='Other'))
    assert resp.status_code == 400
    assert 'sku' in resp.get_json()['errors']
    assert InventoryItem.query.count() == 1


def test_non_object_body_and_numeric_sku(client):
    login(client)
    assert client.post('/api/inventory/', json=[payload()]).status_code == 400

    resp = client.post('/api/inventory/', json=payload(sku=1234))
    assert resp.status_code == 201
    assert resp.get_json()['data']['item']['sku'] == '1234'


def test_list_search_and_low_stock(client):
    login(client)
    client.post('/api/inventory/', json=payload())
    client.post('/api/inventory/', json=payload(name='Flea Shampoo', sku='GROOM-001',
                                                category='grooming', quantity=2))

    items = client.get('/api/inventory/').get_json()['data']['items']
    assert [i['name'] for i in items] == ['Flea Shampoo', 'Puppy Kibble 3kg']

    low = client.get('/api/inventory/?lowStock=true').get_json()['data']['items']
    assert [i['sku'] for i in low] == ['GROOM-001']
    assert low[0]['isLowStock'] is True

    found = client.get('/api/inventory/?search=kibble').get_json()['data']['items']
    assert len(found) == 1


def test_detail_includes_movements(client):
    login(client)
    item_id = client.post('/api/inventory/', json=payload()).get_json()['data']['item']['id']
    data = client.get(f'/api/inventory/{item_id}').get_json()['data']
    assert data['item']['id'] == item_id
    assert data['stockMovements'][0]['type'] == 'purchase'
    assert client.get('/api/inventory/9999').status_code == 404


def test_staff_cannot_create_items(client):
    login(client, 'desk')
    assert client.get('/api/inventory/').status_code == 200
    assert client.post('/api/inventory/', json=payload()).status_code == 403
