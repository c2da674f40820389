from flask import Blueprint, request, jsonify, g
from classes.errors import InvalidRequest
from classes.validators import validate_progress_payload
from utils.helpers import parse_bool_arg, parse_positive_int
from utils.utils import admin_required, self_or_admin_required, get_progress_manager

progress_bp = Blueprint("progress", __name__)


# All users' completion (admin overview)
@progress_bp.route("", methods=["GET"])
@admin_required
def get_all_progress():
    if request.args.get("all") != "true":
        raise InvalidRequest("Use ?all=true to get all users progress")

    result = get_progress_manager().all_users_progress(
        g.user,
        folder=request.args.get("folder") or None,
        incomplete_only=parse_bool_arg(request.args.get("incompleteOnly")),
        page=parse_positive_int(request.args.get("page"), 1),
        limit=parse_positive_int(request.args.get("limit"), 20),
    )
    return jsonify(result), 200


@progress_bp.route("/<username>", methods=["GET"])
@self_or_admin_required
def get_user_progress(username):
    return jsonify(get_progress_manager().get_progress(g.user, username)), 200


@progress_bp.route("/summary/<username>", methods=["GET"])
@self_or_admin_required
def get_progress_summary(username):
    return jsonify(get_progress_manager().get_summary(g.user, username)), 200


# Single {video_id, completed} or bulk {updates: [...]}
@progress_bp.route("/<username>", methods=["POST"])
@self_or_admin_required
def update_user_progress(username):
    updates = validate_progress_payload(request.get_json(silent=True))
    return jsonify(get_progress_manager().update_progress(g.user, username, updates)), 200


@progress_bp.route("/audit/<username>", methods=["GET"])
@admin_required
def get_progress_audit(username):
    limit = parse_positive_int(request.args.get("limit"), 100)
    return jsonify(get_progress_manager().audit_history(g.user, username, limit=limit)), 200
