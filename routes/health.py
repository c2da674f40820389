import logging
from flask import Blueprint, jsonify, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from models import db
from models.progress import Progress
from models.users import User
from models.videos import Video
from utils.helpers import format_datetime, utcnow
from utils.utils import get_auth_service, get_broadcaster

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__)


@health_bp.route("", methods=["GET"])
def health_check():
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error("Health check database error: %s", e)
        body = {
            "status": "unhealthy",
            "timestamp": format_datetime(utcnow()),
            "error": "Database connection failed",
        }
        if current_app.config["EXPOSE_ERROR_DETAILS"]:
            body["details"] = str(e)
        return jsonify(body), 503

    system_info = {
        "status": "healthy",
        "timestamp": format_datetime(utcnow()),
        "database": {"connected": True},
        "sse_clients": get_broadcaster().connection_count(),
    }

    try:
        system_info["statistics"] = {
            "total_users": User.query.filter_by(is_deleted=False).count(),
            "total_videos": Video.query.filter_by(is_deleted=False).count(),
            "total_progress_records": Progress.query.count(),
            "active_sessions": get_auth_service().count_active_sessions(),
        }
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.warning("Could not fetch statistics: %s", e)
        system_info["statistics"] = {"error": "Could not fetch statistics"}

    return jsonify(system_info), 200
