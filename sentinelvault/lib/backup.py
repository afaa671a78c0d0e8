"""Backup export: encrypted records plus the identity's public material.

Only ciphertext ever reaches this module; restoring a backup still needs
the master password.
"""
from __future__ import annotations
import io, json
from datetime import datetime, timezone
from typing import Any, Dict
from sentinelvault import __version__
from sentinelvault.config.settings import FORMAT_VERSION
from .errors import BackupError
from .storage import VaultStorage
from .utils import ts_encode
from .vault import Vault

BACKUP_FORMATS = ('json', 'qr')


def build_backup(storage: VaultStorage, vault: Vault) -> Dict[str, Any]:
	return {
		'version': FORMAT_VERSION,
		'generator': f'sentinelvault {__version__}',
		'created_at': ts_encode(datetime.now(timezone.utc)),
		'identity': storage.load_identity().to_dict(),
		'vault': vault.to_dict(),
	}


def render_backup(doc: Dict[str, Any], fmt: str = 'json') -> str:
	if fmt == 'json':
		return json.dumps(doc, indent=2)
	if fmt == 'qr':
		return render_qr(json.dumps(doc, separators=(',', ':')))
	raise BackupError(f'Unknown backup format: {fmt}')


def render_qr(payload: str) -> str:
	"""Render ``payload`` as a terminal QR code (needs the ``qr`` extra)."""
	try:
		import qrcode
		from qrcode.exceptions import DataOverflowError
	except ImportError:
		raise BackupError('QR backup needs the optional qrcode package: pip install "sentinelvault[qr]"') from None
	qr = qrcode.QRCode(border=1)
	qr.add_data(payload)
	try:
		qr.make(fit=True)
	except DataOverflowError:
		raise BackupError('Vault too large for a single QR code; use --format json') from None
	out = io.StringIO()
	qr.print_ascii(out=out, invert=True)
	return out.getvalue()
