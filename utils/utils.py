from functools import wraps
from flask import request, g, current_app


def get_auth_service():
    return current_app.extensions["auth_service"]


def get_progress_manager():
    return current_app.extensions["progress_manager"]


def get_broadcaster():
    return current_app.extensions["progress_broadcaster"]


def get_session_token():
    """Session token from an explicit Bearer header, falling back to the http-only cookie."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[len("Bearer "):].strip()
        if token:
            return token

    return request.cookies.get(current_app.config["AUTH_COOKIE_NAME"]) or None


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.user = get_auth_service().validate(get_session_token())
        return f(*args, **kwargs)

    return decorated_function


def admin_required(f):
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        get_auth_service().require_role(g.user, "admin")
        return f(*args, **kwargs)

    return decorated_function


def self_or_admin_required(f):
    """For routes taking a ``username`` argument."""
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        get_auth_service().require_self_or_admin(g.user, kwargs.get("username"))
        return f(*args, **kwargs)

    return decorated_function


def set_session_cookie(response, token, max_age):
    config = current_app.config
    response.set_cookie(
        config["AUTH_COOKIE_NAME"], token,
        httponly=True,
        secure=config["SESSION_COOKIE_SECURE"],
        samesite=config["SESSION_COOKIE_SAMESITE"],
        path="/",
        max_age=max_age
    )
    return response


def clear_session_cookie(response):
    config = current_app.config
    response.set_cookie(
        config["AUTH_COOKIE_NAME"], "",
        httponly=True,
        secure=config["SESSION_COOKIE_SECURE"],
        samesite=config["SESSION_COOKIE_SAMESITE"],
        path="/",
        max_age=0
    )
    return response
