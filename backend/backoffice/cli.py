# Overview: Flask CLI command groups for bootstrap, permissions, and reminder dispatch.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, permissions, default roles, and an admin user.
#
# Users:
# - python -m flask users create --username maker --email maker@example.com --password "Password123" --role "warehouse staff"
#
# Permissions:
# - python -m flask perms list
# - python -m flask perms grant "warehouse staff" "approve stock correction"
# - python -m flask perms revoke "warehouse staff" "approve stock correction"
#
# Reminders:
# - python -m flask reminders dispatch
#   Send every due approval reminder; schedule this from cron.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Permission, User
from .services import notification_service, permission_service
from .services.auth_service import PasswordValidationError, create_user


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--admin-password', default='Password123', help='Password for the admin user')
@with_appcontext
def init_system(admin_password):
    """Create tables, permissions, default roles, and a super admin user."""
    db.create_all()

    perm_count = permission_service.initialize_permissions()
    assignment_count = permission_service.assign_default_role_permissions()
    click.echo(f"PASS Created {perm_count} permissions, {assignment_count} role assignments")

    if db.session.query(User).filter_by(username="admin").first():
        click.echo("WARN  User 'admin' already exists, skipping...")
        return

    try:
        user = create_user("admin", "admin@backoffice.local", admin_password, name="Administrator")
    except PasswordValidationError as e:
        raise click.ClickException(f"Password validation failed: {e}")

    permission_service.assign_role(user.id, current_app.config["SUPER_ADMIN_ROLE"])
    click.echo(f"PASS Created user: admin with role '{current_app.config['SUPER_ADMIN_ROLE']}'")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--name', default=None)
@click.option('--role', 'role_name', default=None, help='Role to assign')
@with_appcontext
def create_user_command(username, email, password, name, role_name):
    try:
        user = create_user(username, email, password, name=name)
    except (PasswordValidationError, ValueError) as e:
        raise click.ClickException(str(e))

    if role_name:
        try:
            permission_service.assign_role(user.id, role_name)
        except ValueError as e:
            raise click.ClickException(str(e))

    click.echo(f"PASS Created user: {user.username} (ID: {user.id})")


@click.group('perms')
def perms_group():
    """Permission inspection and repair commands."""


@perms_group.command('list')
@with_appcontext
def list_permissions():
    for permission in db.session.query(Permission).order_by(Permission.name).all():
        click.echo(f"{permission.name:<32} {permission.category or ''}")


@perms_group.command('grant')
@click.argument('role_name')
@click.argument('permission_name')
@with_appcontext
def grant_permission(role_name, permission_name):
    try:
        permission_service.grant_permission_to_role(role_name, permission_name)
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Granted '{permission_name}' to '{role_name}'")


@perms_group.command('revoke')
@click.argument('role_name')
@click.argument('permission_name')
@with_appcontext
def revoke_permission(role_name, permission_name):
    try:
        revoked = permission_service.revoke_permission_from_role(role_name, permission_name)
    except ValueError as e:
        raise click.ClickException(str(e))
    if revoked:
        click.echo(f"PASS Revoked '{permission_name}' from '{role_name}'")
    else:
        click.echo(f"WARN  '{role_name}' did not have '{permission_name}'")


@click.group('reminders')
def reminders_group():
    """Approval reminder commands."""


@reminders_group.command('dispatch')
@with_appcontext
def dispatch_reminders():
    sent = notification_service.dispatch_due_reminders()
    click.echo(f"PASS Dispatched {sent} reminder(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(reminders_group)
