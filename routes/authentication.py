import logging
from flask import Blueprint, request, jsonify, make_response, current_app
from classes.errors import AUTH_ERRORS
from classes.validators import validate_login_payload
from utils.helpers import format_datetime
from utils.utils import get_auth_service, get_session_token, set_session_cookie, clear_session_cookie

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth_bp', __name__)


# Login
@auth_bp.route('/login', methods=['POST'])
def login():
    username, password = validate_login_payload(request.get_json(silent=True))

    user_session = get_auth_service().authenticate(username, password)
    user = user_session.user

    response = make_response(jsonify({
        "message": "Login successful",
        "user": user.to_dict(),
        "sessionToken": user_session.session_token,
        "expiresAt": format_datetime(user_session.expires_at)
    }))

    lifetime = current_app.config["SESSION_LIFETIME"]
    return set_session_cookie(response, user_session.session_token, int(lifetime.total_seconds()))


# Logout
@auth_bp.route('/logout', methods=['POST'])
def logout():
    get_auth_service().revoke(get_session_token())
    response = make_response(jsonify({"message": "Logged out successfully"}))
    return clear_session_cookie(response)


# Session check
@auth_bp.route('/session', methods=['GET'])
def current_session():
    try:
        context = get_auth_service().validate(get_session_token())
    except AUTH_ERRORS as e:
        response = make_response(jsonify(e.to_dict()), e.status_code)
        return clear_session_cookie(response)

    return jsonify({
        "user": context.to_dict(),
        "expiresAt": format_datetime(context.expires_at)
    }), 200
