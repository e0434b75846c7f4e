import shutil
from datetime import datetime

from flask import jsonify, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from vetclinic import db
from vetclinic.main import main


@main.route('/health')
def health():
    """Health check for load balancers and monitoring."""
    status = "ok"
    failures = []

    # 1. DB Check
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        status = "error"
        failures.append(f"DB: {e}")
        current_app.logger.error(f"Health check failed (DB): {e}")

    # 2. Disk Check
    total, used, free = shutil.disk_usage("/")
    percent_free = (free / total) * 100
    if percent_free < 10:
        msg = f"Low Disk Space: {free // (2**30)}GB free ({percent_free:.1f}%)"
        failures.append(msg)
        current_app.logger.warning(msg)
        if status == "ok":
            status = "warning"

    response = {
        "status": status,
        "timestamp": datetime.utcnow().isoformat(),
        "details": {
            "db": "error" if any(f.startswith("DB") for f in failures) else "ok",
            "disk_free_percent": round(percent_free, 1),
        },
    }
    if failures:
        response["failures"] = failures

    return jsonify(response), 200 if status != "error" else 503
