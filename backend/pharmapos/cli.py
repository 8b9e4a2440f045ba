# Overview: Flask CLI command groups for bootstrap, user inspection, and maintenance.

# backend/pharmapos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--admin-email admin@pharmapos.local] [--admin-password "Password123!"]
#   Idempotent bootstrap: creates tables, the store settings row and a Super Admin.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system verify-ledger
#   Check every batch quantity against the sum of its movements.
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --email manager@pharmapos.local --password "Password123!" --role "Stock Manager"
#   Create a user (prompts if options are omitted).
# - python -m flask users set-role manager@pharmapos.local Cashier
#   Change a user's role and revoke their sessions.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --retention-days 30
#   Delete expired or revoked sessions older than the retention window.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, Profile
from .permissions import ALL_ROLES, ROLE_SUPER_ADMIN
from .services.auth_service import create_user, normalize_email, PasswordValidationError, SignUpError, EmailAlreadyRegisteredError
from .services import settings_service, session_service, user_service, inventory_service
from .validation import ValidationError, ConflictError, NotFoundError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default='admin@pharmapos.local', show_default=True, help='Super Admin email')
@click.option('--admin-password', default='Password123!', show_default=True, help='Super Admin password')
@with_appcontext
def init_system(admin_email, admin_password):
    """
    Initialize PharmaPOS: tables, store settings and the first Super Admin.

    Sign-up only ever creates Cashiers, so the first Super Admin has to come
    from here.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing PharmaPOS...")

    db.create_all()
    click.echo("PASS Tables present")

    settings = settings_service.get_settings()
    click.echo(f"PASS Store settings: {settings.company_name} (tax {settings.to_dict()['tax_rate']}%)")

    email = normalize_email(admin_email)
    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        click.echo(f"PASS Using existing user: {email}")
    else:
        try:
            create_user(email, admin_password, role=ROLE_SUPER_ADMIN, full_name="Administrator")
        except (PasswordValidationError, SignUpError) as e:
            raise click.ClickException(f"Could not create Super Admin: {e}")
        click.echo(f"PASS Created Super Admin: {email}")

    click.echo("DONE PharmaPOS initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("DONE Database reset. Run 'flask system init' to create the Super Admin.")


@system_group.command('verify-ledger')
@click.option('--product-id', type=int, help='Only check batches of this product')
@with_appcontext
def verify_ledger_cli(product_id):
    """Compare every batch quantity with its movement ledger."""
    problems = inventory_service.verify_ledger(product_id)
    if not problems:
        click.echo("PASS Ledger consistent")
        return
    for p in problems:
        click.echo(
            f"FAIL batch {p['batch_id']} (product {p['product_id']}): "
            f"quantity {p['quantity']} != ledger {p['ledger_sum']}"
        )
    raise click.ClickException(f"{len(problems)} batch(es) out of balance")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ALL_ROLES)), prompt=True, help='Role')
@click.option('--full-name', default=None, help='Display name')
@with_appcontext
def create_user_cli(email, password, role, full_name):
    """
    Create a user with any role.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(email, password, role=role, full_name=full_name)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except (SignUpError, EmailAlreadyRegisteredError) as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")
        return

    click.echo(f"PASS Created user: {user.email} with role '{role}'")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@click.option('--role', type=click.Choice(list(ALL_ROLES)), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with their roles."""
    query = db.session.query(User, Profile).outerjoin(Profile, Profile.user_id == User.id)
    if role:
        query = query.filter(Profile.role == role)

    rows = query.order_by(User.id).all()
    if not rows:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Email':<35} {'Name':<20} {'Active':<8} {'Role'}")
    click.echo("="*90)

    for user, profile in rows:
        name = (profile.full_name if profile else None) or "-"
        role_str = profile.role if profile else "none"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<35} {name:<20} {active_str:<8} {role_str}")

    click.echo("="*90 + "\n")


@users_group.command('set-role')
@click.argument('email')
@click.argument('role', type=click.Choice(list(ALL_ROLES)))
@with_appcontext
def set_role_cli(email, role):
    """Change a user's role. Their sessions are revoked."""
    user = db.session.query(User).filter_by(email=normalize_email(email)).first()
    if not user:
        raise click.ClickException(f"User {email} not found")
    try:
        user_service.change_role(user_id=user.id, role=role)
    except (ValidationError, ConflictError, NotFoundError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {user.email} is now '{role}'")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    """
    Cleanup expired and revoked sessions.

    Default retention: 30 days.
    """
    deleted = session_service.cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"Deleted {deleted} sessions older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
