# Overview: Flask CLI command groups for bootstrap and store configuration.

# backend/repairdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "repairdesk:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--org "Org Name"] [--store "Main Store"]
#   Idempotent bootstrap: creates an organization, a store and default users.
#
# Store configuration:
# - python -m flask stores list
#   List stores with organization and processor configuration.
# - python -m flask stores set-payment-keys --store-id 1 --publishable-key pk_... --secret-key sk_... --webhook-secret whsec_...
#   Store processor keys (secret and webhook secret are encrypted at rest).
#
# Security:
# - python -m flask security generate-key
#   Print a new CREDENTIALS_ENCRYPTION_KEY.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import ServiceError
from .models import Organization, Store, User
from .models.auth import ORG_ROLE_ADMIN, ROLE_ADMIN, ROLE_TECHNICIAN
from .services.auth_service import create_user, PasswordValidationError
from .services import credential_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Organization', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@click.option('--store', 'store_name', default='Main Store', help='Store name')
@with_appcontext
def init_system(org_name, org_code, store_name):
    """
    Initialize RepairDesk: organization, store and default users.

    Creates:
    - Organization (if none exists)
    - Store within the organization
    - Users: admin (admin + org_admin), tech (technician)
    - All passwords default to: "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing RepairDesk...")

    org = db.session.query(Organization).filter_by(code=org_code).first()
    if not org:
        org = Organization(name=org_name, code=org_code, is_active=True)
        db.session.add(org)
        db.session.commit()
        click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    store = db.session.query(Store).filter_by(org_id=org.id, name=store_name).first()
    if not store:
        store = Store(org_id=org.id, name=store_name)
        db.session.add(store)
        db.session.commit()
        click.echo(f"PASS Created store: {store.name} (ID: {store.id}, Org: {org.name})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")

    default_password = "Password123!"
    default_users = [
        ("admin", "Store Admin", ROLE_ADMIN, ORG_ROLE_ADMIN),
        ("tech", "Bench Technician", ROLE_TECHNICIAN, None),
    ]

    click.echo("\nUSERS Creating default users...")
    for username, name, role, org_role in default_users:
        existing = db.session.query(User).filter_by(store_id=store.id, username=username).first()
        if existing:
            click.echo(f"WARN  User '{username}' already exists in store, skipping...")
            continue
        try:
            create_user(
                store_id=store.id,
                username=username,
                password=default_password,
                name=name,
                role=role,
                org_role=org_role,
            )
            click.echo(f"PASS Created user: {username} with role '{role}'")
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed for '{username}': {str(e)}")
        except ServiceError as e:
            click.echo(f"FAIL Failed to create user '{username}': {str(e)}")

    click.echo("\nDONE RepairDesk initialized")
    click.echo(f"Organization: {org.name} (ID: {org.id})")
    click.echo(f"Store: {store.name} (ID: {store.id})")
    click.echo("Default credentials (CHANGE IN PRODUCTION!): admin / tech, password Password123!")


@click.group('stores')
def stores_group():
    """Store inspection and configuration."""


@stores_group.command('list')
@with_appcontext
def list_stores():
    """List stores with their organization and processor status."""
    stores = db.session.query(Store).order_by(Store.id).all()
    if not stores:
        click.echo("No stores found")
        return
    for store in stores:
        config = credential_service.get_public_config(store.id)
        processor = "configured" if config["webhook_secret_configured"] else "not configured"
        click.echo(f"{store.id:>4}  {store.name:<30} org={store.org_id}  processor={processor}")


@stores_group.command('set-payment-keys')
@click.option('--store-id', type=int, required=True)
@click.option('--publishable-key', default=None)
@click.option('--secret-key', default=None)
@click.option('--webhook-secret', default=None)
@with_appcontext
def set_payment_keys(store_id, publishable_key, secret_key, webhook_secret):
    """Store payment processor keys for a store. Omitted keys are left unchanged."""
    try:
        credential_service.set_credentials(
            store_id,
            publishable_key=publishable_key,
            secret_key=secret_key,
            webhook_secret=webhook_secret,
        )
    except (ServiceError, credential_service.CredentialEncryptionError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Payment processor keys updated for store {store_id}")


@click.group('security')
def security_group():
    """Security helpers."""


@security_group.command('generate-key')
def generate_key():
    """Print a new Fernet key for CREDENTIALS_ENCRYPTION_KEY."""
    click.echo(credential_service.generate_key())


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(security_group)
