# backend/shoppos/routes/system.py
"""
System health endpoint.

Used by the deployment's liveness probe and by the front-end's connectivity
indicator.
"""

from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from shoppos.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> bool:
    try:
        db.session.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return False


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database ping failed
    """
    db_ok = check_database_health()
    response = {
        "status": "ok" if db_ok else "unhealthy",
        "db": "ok" if db_ok else "error",
        "timestamp": to_utc_z(utcnow()),
    }
    return response, 200 if db_ok else 503
