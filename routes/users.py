from flask import Blueprint, request, jsonify, g
from sqlalchemy.exc import IntegrityError
from classes.errors import Conflict, Forbidden, InvalidRequest, NotFound
from classes.validators import validate_length, validate_password, validate_role, validate_username
from models import db
from models.users import User
from utils.helpers import format_datetime
from utils.utils import admin_required, get_auth_service

users_bp = Blueprint("users", __name__)


def get_active_user_or_404(user_id):
    user = User.query.filter_by(id=user_id, is_deleted=False).first()
    if not user:
        raise NotFound("User not found")
    return user


@users_bp.route("", methods=["GET"])
@admin_required
def list_users():
    role = request.args.get("role")
    query = User.query.filter_by(is_deleted=False)
    if role:
        query = query.filter_by(role=validate_role(role))
    users = query.order_by(User.username).all()
    return jsonify({"users": [user.to_dict() for user in users]}), 200


@users_bp.route("/<username>", methods=["GET"])
@admin_required
def get_user(username):
    user = User.query.filter_by(username=username, is_deleted=False).first()
    if not user:
        raise NotFound("User not found")

    details = user.to_dict()
    details["created_at"] = format_datetime(user.created_at)
    details["updated_at"] = format_datetime(user.updated_at)
    return jsonify({"user": details}), 200


@users_bp.route("", methods=["POST"])
@admin_required
def create_user():
    """Admin can add a new user (admin or student)."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidRequest("Request body must be a JSON object.")

    username = validate_username(data.get("username"))
    name = validate_length("Name", data.get("name"), 100)
    password = validate_password(data.get("password"))
    role = validate_role(data.get("role", "student"))

    # Usernames stay reserved by soft-deleted users
    if User.query.filter_by(username=username).first():
        raise Conflict("User already exists")

    new_user = User(username=username, name=name, role=role)
    new_user.set_password(password)

    db.session.add(new_user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("User already exists")

    return jsonify({"message": "User created successfully", "user": new_user.to_dict()}), 201


@users_bp.route("/<int:user_id>", methods=["PUT"])
@admin_required
def update_user(user_id):
    user = get_active_user_or_404(user_id)
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidRequest("Request body must be a JSON object.")

    if "name" in data:
        user.name = validate_length("Name", data["name"], 100)
    if "role" in data:
        user.role = validate_role(data["role"])
    if "password" in data:
        user.set_password(validate_password(data["password"]))

    db.session.commit()
    return jsonify({"message": "User updated successfully", "user": user.to_dict()}), 200


@users_bp.route("/<int:user_id>", methods=["DELETE"])
@admin_required
def delete_user(user_id):
    if user_id == g.user.user_id:
        raise Forbidden("Admins cannot delete their own account")

    user = get_active_user_or_404(user_id)
    user.is_deleted = True
    db.session.commit()
    get_auth_service().revoke_all(user.id)

    return jsonify({"message": "User deleted successfully"}), 200
