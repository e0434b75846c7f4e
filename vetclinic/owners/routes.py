from flask import request, jsonify, abort, current_app

from vetclinic import db
from vetclinic.owners import owners
from vetclinic.owners.models import Owner, Pet
from vetclinic.auth.decorators import permission_required
from vetclinic.auth import permissions as perms
from vetclinic.utils.request import json_body, text_field

SPECIES = ('dog', 'cat', 'bird', 'fish', 'rabbit', 'hamster', 'other')


def _get_owner_or_404(owner_id):
    owner = db.session.get(Owner, owner_id)
    if owner is None or not owner.is_active:
        abort(404, description='Owner not found')
    return owner


@owners.route('/')
@permission_required(perms.READ_OWNERS)
def index():
    """List active owners, optionally filtered by name or phone."""
    q = request.args.get('search', '').strip()
    query = Owner.query.filter(Owner.is_active.is_(True))
    if q:
        query = query.filter(
            (Owner.phone.ilike(f'%{q}%')) |
            (Owner.first_name.ilike(f'%{q}%')) |
            (Owner.last_name.ilike(f'%{q}%'))
        )
    results = query.order_by(Owner.last_name.asc(), Owner.first_name.asc()).limit(50).all()
    return jsonify({'success': True, 'data': {'owners': [o.to_dict() for o in results]}})


@owners.route('/', methods=['POST'])
@permission_required(perms.WRITE_OWNERS)
def create():
    data = json_body()
    first_name = text_field(data, 'firstName')
    last_name  = text_field(data, 'lastName')
    phone      = text_field(data, 'phone')

    if not first_name or not last_name or not phone:
        abort(400, description='First name, last name and phone are required')

    if Owner.query.filter_by(phone=phone).first():
        abort(400, description='Owner with this phone already exists')

    owner = Owner(
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        email=text_field(data, 'email').lower() or None,
        address=text_field(data, 'address') or None,
    )
    db.session.add(owner)
    db.session.commit()
    current_app.logger.info(f"Owner registered: {owner.full_name} ({owner.phone})")

    return jsonify({
        'success': True,
        'message': 'Owner created successfully',
        'data': {'owner': owner.to_dict()},
    }), 201


@owners.route('/<int:owner_id>')
@permission_required(perms.READ_OWNERS)
def detail(owner_id):
    owner = _get_owner_or_404(owner_id)
    return jsonify({'success': True, 'data': {'owner': owner.to_dict(include_pets=True)}})


@owners.route('/<int:owner_id>/pets', methods=['POST'])
@permission_required(perms.WRITE_OWNERS)
def add_pet(owner_id):
    owner = _get_owner_or_404(owner_id)
    data = json_body()

    name    = text_field(data, 'name')
    species = (text_field(data, 'species') or 'other').lower()
    if not name:
        abort(400, description='Pet name is required')
    if species not in SPECIES:
        abort(400, description=f'Species must be one of: {", ".join(SPECIES)}')

    pet = Pet(name=name, species=species, breed=text_field(data, 'breed') or None)
    owner.pets.append(pet)
    db.session.commit()

    return jsonify({
        'success': True,
        'message': 'Pet added successfully',
        'data': {'pet': pet.to_dict()},
    }), 201
