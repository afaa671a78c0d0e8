"""CLI commands implemented with click.

Every command runs one load -> mutate -> save cycle through
VaultStorage.unlock(); nothing is kept between invocations.
"""
from __future__ import annotations
import logging, sys
from contextlib import contextmanager
from pathlib import Path
import click
from sentinelvault import __version__
from sentinelvault.config import settings
from sentinelvault.lib.backup import BACKUP_FORMATS, build_backup, render_backup
from sentinelvault.lib.errors import (
	AuthenticationError, CorruptedRecord, Expired, SentinelError, VaultBusy, VaultNotInitialized
)
from sentinelvault.lib.lease import parse_duration
from sentinelvault.lib.storage import VaultStorage
from sentinelvault.lib.utils import format_bytes

log = logging.getLogger(__name__)


def describe(exc: SentinelError) -> str:
	"""Actionable message for an engine error; never echoes secrets."""
	if isinstance(exc, VaultNotInitialized):
		return "Vault not initialized. Run 'sentinel init' first."
	if isinstance(exc, AuthenticationError):
		return 'Invalid master password.'
	if isinstance(exc, VaultBusy):
		return 'Vault is in use by another sentinel command; try again once it finishes.'
	if isinstance(exc, Expired):
		return f"Secret '{exc.name}' has expired and was removed."
	if isinstance(exc, CorruptedRecord):
		return f"Secret '{exc.name}' failed its integrity check; the vault file may have been tampered with."
	return str(exc)


@contextmanager
def handle_errors():
	try:
		yield
	except SentinelError as e:
		click.echo(f'Error: {describe(e)}', err=True)
		sys.exit(1)


def _storage(ctx: click.Context) -> VaultStorage:
	return ctx.obj


@click.group()
@click.version_option(__version__, prog_name='sentinel')
@click.option('--vault-dir', type=click.Path(file_okay=False, path_type=Path), default=None,
	help='Vault directory (default: $SENTINELVAULT_HOME or ~/.sentinelvault).')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
	default=None, help='Logging verbosity.')
@click.pass_context
def cli(ctx, vault_dir, log_level):
	"""sentinel: a lightweight zero-trust secrets manager"""
	logging.basicConfig(level=(log_level or settings.log_level()).upper(), format='%(levelname)s %(name)s: %(message)s')
	ctx.obj = VaultStorage(vault_dir)

@cli.command()
@click.option('--password', prompt='Master password', hide_input=True, confirmation_prompt=True)
@click.option('--force', is_flag=True, help='Recreate if vault already exists (destroys all secrets).')
@click.pass_context
def init(ctx, password, force):
	"""Initialise a new vault protected by a master password."""
	vs = _storage(ctx)
	if len(password) < settings.MIN_PASSWORD_LENGTH:
		click.echo(f'Error: Password must be at least {settings.MIN_PASSWORD_LENGTH} characters long.', err=True)
		sys.exit(1)
	if vs.exists():
		if not force:
			click.echo('Error: Vault already initialized. Use --force to recreate it.', err=True)
			sys.exit(1)
		click.confirm('Re-initializing permanently destroys every stored secret. Continue?', abort=True)
	with handle_errors():
		vs.init(password, force=force)
	click.echo('Vault initialized successfully!')

@cli.command()
@click.argument('name')
@click.option('--password', prompt='Master password', hide_input=True)
@click.option('--value', prompt='Secret value', hide_input=True, help='Secret value (prompted if omitted).')
@click.option('--lease', default=None, help='Expire after a duration, e.g. 10m, 1h, 7d.')
@click.pass_context
def add(ctx, name, password, value, lease):
	"""Add a new secret."""
	with handle_errors():
		duration = parse_duration(lease) if lease else None
		with _storage(ctx).unlock(password) as vault:
			vault.add(name, value, duration)
	click.echo(f"Secret '{name}' added successfully!")

@cli.command()
@click.argument('name')
@click.option('--password', prompt='Master password', hide_input=True)
@click.pass_context
def get(ctx, name, password):
	"""Print a secret's value."""
	with handle_errors():
		with _storage(ctx).unlock(password) as vault:
			value = vault.get(name)
	click.echo(value)

@cli.command()
@click.argument('name')
@click.option('--password', prompt='Master password', hide_input=True)
@click.option('--value', prompt='New secret value', hide_input=True)
@click.pass_context
def update(ctx, name, password, value):
	"""Replace a secret's value, keeping its lease."""
	with handle_errors():
		with _storage(ctx).unlock(password) as vault:
			vault.update(name, value)
	click.echo(f"Secret '{name}' updated.")

@cli.command('list')
@click.option('--password', prompt='Master password', hide_input=True)
@click.pass_context
def list_secrets(ctx, password):
	"""List secret names (never values)."""
	with handle_errors():
		with _storage(ctx).unlock(password) as vault:
			items = vault.list()
	if not items:
		click.echo('No secrets stored in vault')
		return
	click.echo('Stored secrets:')
	for name, expires_at in items:
		when = f"expires: {expires_at:%Y-%m-%d %H:%M:%S} UTC" if expires_at else 'no expiration'
		click.echo(f'  - {name} ({when})')

@cli.command()
@click.argument('name')
@click.option('--after', default=None, help='New lease duration, e.g. 10m, 1h, 1d.')
@click.option('--clear', is_flag=True, help='Remove the lease.')
@click.option('--password', prompt='Master password', hide_input=True)
@click.pass_context
def expire(ctx, name, after, clear, password):
	"""Set or clear the expiry of a secret."""
	if bool(after) == clear:
		raise click.UsageError('Give exactly one of --after or --clear.')
	with handle_errors():
		duration = parse_duration(after) if after else None
		with _storage(ctx).unlock(password) as vault:
			if clear:
				vault.clear_expiry(name)
			else:
				vault.set_expiry(name, duration)
	click.echo(f"Cleared expiry for '{name}'" if clear else f"Set expiry for '{name}' to {after}")

@cli.command()
@click.argument('name')
@click.option('--password', prompt='Master password', hide_input=True)
@click.pass_context
def remove(ctx, name, password):
	"""Remove a secret permanently."""
	with handle_errors():
		with _storage(ctx).unlock(password) as vault:
			vault.remove(name)
	click.echo(f"Secret '{name}' removed successfully!")

@cli.command()
@click.option('--password', prompt='Master password', hide_input=True)
@click.pass_context
def sweep(ctx, password):
	"""Remove every expired secret now."""
	with handle_errors():
		with _storage(ctx).unlock(password) as vault:
			count = vault.sweep_expired()
	click.echo(f'Removed {count} expired secret(s).')

@cli.command()
@click.option('--password', prompt='Master password', hide_input=True)
@click.pass_context
def stats(ctx, password):
	"""Show vault statistics."""
	with handle_errors():
		with _storage(ctx).unlock(password) as vault:
			st = vault.stats()
	click.echo('Vault Statistics:')
	click.echo(f'  Total secrets: {st.total}')
	click.echo(f'  Active leases: {st.active_leases}')
	click.echo(f'  Expired (not yet swept): {st.expired_but_not_swept}')
	click.echo(f'  Vault size: {format_bytes(st.size_bytes)} ({st.size_bytes} bytes)')

@cli.command()
@click.option('--format', 'fmt', type=click.Choice(BACKUP_FORMATS), default='json', show_default=True)
@click.option('--password', prompt='Master password', hide_input=True)
@click.pass_context
def backup(ctx, fmt, password):
	"""Print an encrypted backup of the vault."""
	vs = _storage(ctx)
	with handle_errors():
		with vs.unlock(password) as vault:
			doc = build_backup(vs, vault)
		click.echo(render_backup(doc, fmt))
