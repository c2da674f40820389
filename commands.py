import click
from classes.errors import InvalidRequest
from classes.validators import validate_length, validate_password, validate_role, validate_username
from models import db
from models.users import User


def register_commands(app):

    @app.cli.command("create-user")
    @click.argument("username")
    @click.option("--name", required=True, help="Display name.")
    @click.option("--role", default="admin", show_default=True, type=click.Choice(["admin", "student"]))
    @click.password_option()
    def create_user(username, name, role, password):
        """Create a user, typically the first admin."""
        try:
            username = validate_username(username)
            name = validate_length("Name", name, 100)
            validate_role(role)
            validate_password(password)
        except InvalidRequest as e:
            raise click.BadParameter(str(e))

        if User.query.filter_by(username=username).first():
            raise click.ClickException(f"User {username} already exists")

        user = User(username=username, name=name, role=role)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        click.echo(f"Created {role} {username}")

    @app.cli.command("set-password")
    @click.argument("username")
    @click.password_option()
    def set_password(username, password):
        """Reset a user's password."""
        user = User.query.filter_by(username=username, is_deleted=False).first()
        if not user:
            raise click.ClickException("User not found!")
        try:
            validate_password(password)
        except InvalidRequest as e:
            raise click.BadParameter(str(e))

        user.set_password(password)
        db.session.commit()
        click.echo("Password updated successfully!")

    @app.cli.command("sweep-sessions")
    def sweep_sessions():
        """Delete expired sessions now."""
        deleted = app.extensions["auth_service"].sweep_expired_sessions()
        click.echo(f"Cleaned up {deleted} expired sessions")
