from flask import current_app
from sqlalchemy.dialects import mysql
from models import db
from werkzeug.security import generate_password_hash, check_password_hash

# MySQL's default *_ci collations would make lookups and the unique index case-insensitive
USERNAME_TYPE = db.String(50).with_variant(mysql.VARCHAR(50, collation="utf8mb4_bin"), "mysql")


def password_hash_method(iterations=None):
    if iterations is None:
        iterations = current_app.config["PASSWORD_HASH_ITERATIONS"]
    return f"pbkdf2:sha256:{iterations}"


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(USERNAME_TYPE, nullable=False, unique=True)
    name = db.Column(db.String(100), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default="student")  # 'admin', 'student'
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=db.func.now(), nullable=False)
    updated_at = db.Column(db.DateTime, default=db.func.now(), onupdate=db.func.now(), nullable=False)

    sessions = db.relationship("UserSession", back_populates="user", cascade="all, delete-orphan")

    def set_password(self, password, iterations=None):
        """Hashes the password before storing."""
        self.password_hash = generate_password_hash(password, method=password_hash_method(iterations))

    def check_password(self, password):
        """Checks if a given password matches the stored hash."""
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self):
        return self.role == "admin"

    def __repr__(self):
        return f"<User {self.username} ({self.role})>"

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "role": self.role,
        }
