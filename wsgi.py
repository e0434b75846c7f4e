from vetclinic import create_app, db
import os

config_name = os.environ.get('FLASK_ENV', 'production')
app = create_app(config_name)

# ── Schema bootstrap ──
# Hosts without shell access get their tables on first start
with app.app_context():
    db.create_all()
    app.logger.info("Database tables checked/created.")

if __name__ == "__main__":
    app.run()
