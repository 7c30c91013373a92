import click
from flask.cli import with_appcontext

from ridesync.domain.auth_state import AuthStage
from ridesync.extensions import db
from ridesync.services.container import get_container


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Create the local database tables."""
    db.create_all()
    click.echo('Database initialized successfully!')


@click.command('login')
@with_appcontext
def login_command():
    """Log this device in with a user code."""
    container = get_container()
    device_auth = container.get('device_auth_service')

    state = device_auth.start()
    if state.stage is not AuthStage.WAITING_FOR_USER:
        click.echo(f"Could not start login: {getattr(state, 'message', state.stage.value)}")
        raise SystemExit(1)

    click.echo(f"Go to {state.verification_uri} and enter the code {state.user_code}")
    click.echo("Waiting for approval (Ctrl+C to cancel)...")
    try:
        credentials = device_auth.poll()
    except KeyboardInterrupt:
        device_auth.cancel()
        click.echo("Login cancelled")
        raise SystemExit(1)

    if credentials is None:
        final = device_auth.state
        click.echo(f"Login did not complete: {getattr(final, 'message', final.stage.value)}")
        raise SystemExit(1)

    container.get('sync_service').clear_device_revoked_flag()
    click.echo(f"Logged in as {credentials.email}")


@click.command('logout')
@with_appcontext
def logout_command():
    """Log out and forget the stored credentials."""
    get_container().get('auth_service').logout()
    click.echo("Logged out")


@click.command('sync')
@with_appcontext
def sync_command():
    """Upload every pending and failed record now."""
    summary = get_container().get('sync_service').sync_all()
    if summary.rejected:
        click.echo("A sync pass is already running")
        return
    click.echo(f"Synced {summary.synced}, failed {summary.failed}")
    if summary.device_revoked:
        click.echo("This device was revoked; run 'flask login' again")
    elif summary.needs_login:
        click.echo("Login required; run 'flask login'")


@click.command('retry-failed')
@with_appcontext
def retry_failed_command():
    """Move failed records back to pending."""
    count = get_container().get('sync_service').retry_failed()
    click.echo(f"Re-queued {count} records")


@click.command('status')
@with_appcontext
def status_command():
    """Show login and sync status."""
    container = get_container()
    auth = container.get('auth_service').status()
    counts = container.get('record_repository').pending_counts()
    last_sync = container.get('preference_repository').get_last_sync_timestamp()

    click.echo(f"Device: {auth.device_id}")
    click.echo(f"Logged in: {'yes (' + (auth.email or '') + ')' if auth.is_logged_in else 'no'}")
    click.echo(f"Pending: {counts['ride']} rides, {counts['drill']} drills, {counts['achievement']} achievements")
    click.echo(f"Last sync: {last_sync or 'never'}")


def register_commands(app):
    """Register CLI commands with the app."""
    app.cli.add_command(init_db_command)
    app.cli.add_command(login_command)
    app.cli.add_command(logout_command)
    app.cli.add_command(sync_command)
    app.cli.add_command(retry_failed_command)
    app.cli.add_command(status_command)
