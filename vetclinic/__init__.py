import click
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from werkzeug.exceptions import HTTPException
from config import config

# Created once per process; bound to an app (and its engine) in create_app().
# Repositories never reach for this directly, they are handed db.session.
db = SQLAlchemy()


def create_app(config_name='default'):
    """Application factory — creates and configures the Flask app."""
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    # ── Logging ───────────────────────────────────────────────────
    from vetclinic.utils.logging import setup_logging
    setup_logging(app)

    # ── Extensions ────────────────────────────────────────────────
    db.init_app(app)

    # ── Blueprints ────────────────────────────────────────────────
    from vetclinic.main import main as main_blueprint
    app.register_blueprint(main_blueprint)

    from vetclinic.auth import auth as auth_blueprint
    app.register_blueprint(auth_blueprint, url_prefix='/auth')

    from vetclinic.owners import owners as owners_blueprint
    app.register_blueprint(owners_blueprint, url_prefix='/api/owners')

    from vetclinic.inventory import inventory as inventory_blueprint
    app.register_blueprint(inventory_blueprint, url_prefix='/api/inventory')

    from vetclinic.sales import sales as sales_blueprint
    app.register_blueprint(sales_blueprint, url_prefix='/api/sales')

    # ── Error Handlers ────────────────────────────────────────────
    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({'success': False, 'message': e.description}), e.code

    @app.errorhandler(500)
    def internal_error(e):
        app.logger.error(f"Unhandled server error: {e}")
        return jsonify({'success': False, 'message': 'Internal server error'}), 500

    # ── CLI Commands ──────────────────────────────────────────────
    register_commands(app)

    # ── ProxyFix for HTTPS-terminating load balancers ─────────────
    from werkzeug.middleware.proxy_fix import ProxyFix
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    return app


def register_commands(app):
    """Register custom Flask CLI commands."""

    @app.cli.command('init-db')
    def init_db():
        """Create all database tables."""
        db.create_all()
        click.echo('✅  Database tables created.')

    @app.cli.command('show-sequences')
    def show_sequences():
        """Show current sale number counters per prefix and month (diagnostic)."""
        from vetclinic.sales.models import SaleSequence
        rows = (
            SaleSequence.query
            .order_by(SaleSequence.prefix.asc(), SaleSequence.period.desc())
            .all()
        )
        if not rows:
            click.echo('No sequence rows found. No sales have been created yet.')
            return
        click.echo(f'{"Prefix":<8} {"Period":<8} {"Last Seq":<10} {"Next Sale"}')
        click.echo('─' * 48)
        for row in rows:
            next_no = f'{row.prefix}-{row.period}-{row.last_seq + 1:04d}'
            click.echo(f'{row.prefix:<8} {row.period:<8} {row.last_seq:<10} {next_no}')

    def _create_user(name, username, password, role):
        from vetclinic.auth.models import User

        if User.query.filter_by(username=username).first():
            click.echo(f'⚠️  User "{username}" already exists.')
            return

        user = User(name=name, username=username, role=role)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        click.echo(f'✅  {role.value.title()} user "{username}" created successfully.')

    @app.cli.command('seed-admin')
    @click.option('--name',     prompt='Full name',  help='Admin full name')
    @click.option('--username', prompt='Username',   help='Admin username')
    @click.option('--password', prompt=True, hide_input=True,
                  confirmation_prompt=True, help='Admin password')
    def seed_admin(name, username, password):
        """Create the initial admin user."""
        from vetclinic.auth.models import RoleEnum
        _create_user(name, username, password, RoleEnum.admin)

    @app.cli.command('seed-staff')
    @click.option('--name',     prompt='Full name',  help='Staff full name')
    @click.option('--username', prompt='Username',   help='Staff username')
    @click.option('--password', prompt=True, hide_input=True,
                  confirmation_prompt=True, help='Staff password')
    @click.option('--role', type=click.Choice(['staff', 'veterinarian']),
                  default='staff', show_default=True)
    def seed_staff(name, username, password, role):
        """Create a front-desk or veterinarian user."""
        from vetclinic.auth.models import RoleEnum
        _create_user(name, username, password, RoleEnum(role))

    @app.cli.command('seed-demo')
    def seed_demo():
        """Populate database with demo users, owners, pets and inventory."""
        import random
        from decimal import Decimal
        from vetclinic.auth.models import User, RoleEnum
        from vetclinic.owners.models import Owner, Pet
        from vetclinic.inventory.models import InventoryItem, StockMovement, MovementType

        click.echo("🌱 Seeding demo data...")
        db.create_all()

        if not User.query.filter_by(username='admin').first():
            u = User(name='Admin User', username='admin', role=RoleEnum.admin)
            u.set_password('demo123')
            db.session.add(u)

        if not User.query.filter_by(username='frontdesk').first():
            u = User(name='Priya Desk', username='frontdesk', role=RoleEnum.staff)
            u.set_password('123')
            db.session.add(u)

        db.session.commit()
        click.echo("✅ Users created (admin/demo123, frontdesk/123).")

        if Owner.query.count() == 0:
            for first, last, pet, species in [
                ('Asha', 'Rao', 'Bruno', 'dog'),
                ('Vikram', 'Shah', 'Misty', 'cat'),
                ('Neha', 'Kapoor', 'Kiwi', 'bird'),
            ]:
                o = Owner(first_name=first, last_name=last,
                          email=f'{first.lower()}@example.com',
                          phone=f'98{random.randint(10000000, 99999999)}')
                o.pets.append(Pet(name=pet, species=species))
                db.session.add(o)
            db.session.commit()
            click.echo("✅ Owners and pets seeded.")

        if InventoryItem.query.count() < 5:
            catalogue = [
                ('Puppy Kibble 3kg', 'food', 1450, 18),
                ('Cat Litter 10L', 'supplies', 620, 18),
                ('Deworming Tablet', 'medication', 95, 12),
                ('Chew Toy Bone', 'toys', 240, 18),
                ('Flea Shampoo', 'grooming', 380, 18),
                ('Rabies Vaccine', 'medication', 450, 5),
            ]
            for i, (name, category, price, gst) in enumerate(catalogue, start=1):
                stock = random.randint(10, 60)
                item = InventoryItem(
                    name=name, sku=f'DEMO-{i:03d}', category=category,
                    price=Decimal(price), quantity=stock, gst_rate=gst,
                )
                db.session.add(item)
                db.session.flush()
                db.session.add(StockMovement(
                    inventory_id=item.id, type=MovementType.purchase,
                    quantity=stock, reference='OPENING', notes='Initial demo stock',
                ))
            db.session.commit()
            click.echo("✅ Inventory seeded.")

        click.echo("✅ Demo seed complete.")
