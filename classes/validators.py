import re

from classes.errors import InvalidRequest

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")
ROLES = ("admin", "student")


def validate_length(field_name, value, max_length, min_length=1):
    if not isinstance(value, str):
        raise InvalidRequest(f"{field_name} must be a string.")
    value = value.strip()
    if len(value) < min_length or len(value) > max_length:
        raise InvalidRequest(f"{field_name} must be between {min_length} and {max_length} characters.")
    return value


def validate_username(username):
    username = validate_length("Username", username, 50)
    if not USERNAME_PATTERN.match(username):
        raise InvalidRequest("Username can only contain letters, numbers, and underscores.")
    return username


def validate_password(password):
    if not isinstance(password, str) or len(password) < 6:
        raise InvalidRequest("Password must be at least 6 characters long.")
    return password


def validate_role(role):
    if role not in ROLES:
        raise InvalidRequest("Role must be either admin or student.")
    return role


def validate_position(position):
    if isinstance(position, bool) or not isinstance(position, int) or position < 0:
        raise InvalidRequest("Position must be a non-negative integer.")
    return position


def validate_login_payload(data):
    if not isinstance(data, dict):
        raise InvalidRequest("Request body must be a JSON object.")
    username = data.get("username")
    password = data.get("password")
    # Looked up exactly as sent; no trimming or case folding
    if not isinstance(username, str) or not username.strip() or len(username) > 50:
        raise InvalidRequest("Username must be between 1 and 50 characters.")
    if not isinstance(password, str) or not password:
        raise InvalidRequest("Password is required.")
    return username, password


def validate_progress_payload(data):
    """Normalise a single ``{video_id, completed}`` body or an ``{updates: [...]}`` batch.

    Returns a list of ``(video_id, completed)`` tuples in input order.
    """
    if not isinstance(data, dict):
        raise InvalidRequest("Request body must be a JSON object.")

    if "updates" in data:
        updates = data["updates"]
        if not isinstance(updates, list) or not updates:
            raise InvalidRequest("updates must be a non-empty list.")
    else:
        updates = [{"video_id": data.get("video_id"), "completed": data.get("completed")}]

    normalised = []
    for update in updates:
        if not isinstance(update, dict):
            raise InvalidRequest("Each update must be an object.")
        video_id = update.get("video_id")
        completed = update.get("completed")
        if isinstance(video_id, bool) or not isinstance(video_id, int) or video_id < 1:
            raise InvalidRequest("video_id must be a positive integer.")
        if not isinstance(completed, bool):
            raise InvalidRequest("completed must be a boolean.")
        normalised.append((video_id, completed))
    return normalised
