"""Utility layer: field encoding for the JSON files and input validation."""
from __future__ import annotations
import base64, binascii, json
from datetime import datetime, timezone
from typing import Optional
from sentinelvault.config.settings import MAX_NAME_LENGTH, MAX_VALUE_LENGTH
from .errors import FormatError, NameTooLong, ValueTooLarge, InvalidName, InvalidValue

_INVALID_NAME_CHARS = set('/\\:*?"<>|\0')
_RESERVED_NAMES = {'.', '..', 'CON', 'PRN', 'AUX', 'NUL'}


def b64e(data: bytes) -> str:
	return base64.b64encode(data).decode('ascii')

def b64d(token: str) -> bytes:
	try:
		return base64.b64decode(token.encode('ascii'), validate=True)
	except (binascii.Error, ValueError, AttributeError) as e:
		raise FormatError(f'Invalid base64 field: {e}') from e

def dump_json(doc) -> bytes:
	"""Canonical on-disk form of a vault or identity document."""
	return json.dumps(doc, indent=2).encode('utf-8')

def ts_encode(ts: Optional[datetime]) -> Optional[str]:
	return ts.isoformat() if ts is not None else None

def ts_decode(raw: Optional[str]) -> Optional[datetime]:
	if raw is None:
		return None
	try:
		ts = datetime.fromisoformat(raw)
	except (TypeError, ValueError) as e:
		raise FormatError(f'Invalid timestamp: {raw!r}') from e
	# Naive timestamps are read as UTC
	return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def validate_name(name: str) -> str:
	if not name:
		raise InvalidName(name, 'name cannot be empty')
	if len(name) > MAX_NAME_LENGTH:
		raise NameTooLong(name, MAX_NAME_LENGTH)
	if any(c in _INVALID_NAME_CHARS or not c.isprintable() for c in name):
		raise InvalidName(name, 'name contains invalid characters')
	if name.upper() in _RESERVED_NAMES:
		raise InvalidName(name, 'name is reserved')
	return name

def validate_value(name: str, value: str) -> str:
	if not value:
		raise InvalidValue(name, 'value cannot be empty')
	if len(value) > MAX_VALUE_LENGTH:
		raise ValueTooLarge(name, MAX_VALUE_LENGTH)
	if '\0' in value:
		raise InvalidValue(name, 'value cannot contain null bytes')
	return value


def format_bytes(size: int) -> str:
	units = ['B', 'KB', 'MB', 'GB', 'TB']
	if size < 1024:
		return f'{size} B'
	value = float(size); idx = 0
	while value >= 1024 and idx < len(units) - 1:
		value /= 1024; idx += 1
	return f'{value:.1f} {units[idx]}'
