"""Lease helpers: duration parsing and expiry state."""
from __future__ import annotations
import re
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from .errors import ParseError

_UNITS = {
	**dict.fromkeys(('s', 'sec', 'seconds'), timedelta(seconds=1)),
	**dict.fromkeys(('m', 'min', 'minutes'), timedelta(minutes=1)),
	**dict.fromkeys(('h', 'hour', 'hours'), timedelta(hours=1)),
	**dict.fromkeys(('d', 'day', 'days'), timedelta(days=1)),
	**dict.fromkeys(('w', 'week', 'weeks'), timedelta(weeks=1)),
}
_DURATION_RE = re.compile(r'^([+-]?\d*)\s*([A-Za-z]*)$')


def parse_duration(text: str) -> timedelta:
	"""Parse ``"10m"``, ``"7d"``, ``"2 weeks"`` into a timedelta.

	The magnitude is a non-negative integer; ``"0s"`` is legal and means
	"expire immediately".
	"""
	m = _DURATION_RE.match((text or '').strip())
	if not m:
		raise ParseError(f'Invalid duration: {text!r}')
	number, unit = m.groups()
	if not number or number in ('+', '-'):
		raise ParseError(f'Duration needs a number: {text!r}')
	if not unit:
		raise ParseError('Duration must include a unit (s, m, h, d, w)')
	magnitude = int(number)
	if magnitude < 0:
		raise ParseError('Duration cannot be negative')
	step = _UNITS.get(unit.lower())
	if step is None:
		raise ParseError(f'Invalid duration unit: {unit}. Use s, m, h, d, or w')
	try:
		return step * magnitude
	except OverflowError:
		raise ParseError(f'Duration too large: {text!r}') from None


class RecordState(str, Enum):
	ACTIVE = 'active'
	LEASED = 'leased'
	EXPIRED = 'expired'
	REMOVED = 'removed'


def lease_state(expires_at: Optional[datetime], now: datetime) -> RecordState:
	"""State of a present record; REMOVED is only reported for absent ones."""
	if expires_at is None:
		return RecordState.ACTIVE
	return RecordState.EXPIRED if now >= expires_at else RecordState.LEASED


def is_expired(expires_at: Optional[datetime], now: datetime) -> bool:
	return lease_state(expires_at, now) is RecordState.EXPIRED
