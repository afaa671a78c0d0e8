"""Secret records and the in-memory vault.

A vault is owned by one command invocation: it is loaded, mutated and
saved back whole. Expiry is computed from ``expires_at`` against the clock
on every access, so a record can be logically EXPIRED while still
physically present until a sweep or a lazy touch evicts it.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union
from sentinelvault.config.settings import FORMAT_VERSION
from .crypto import DerivedKey, encrypt, decrypt, secure_zero
from .errors import (
	AuthenticationError, CorruptedRecord, DuplicateName, Expired, FormatError, NotFound, ParseError
)
from .lease import RecordState, lease_state, is_expired, parse_duration
from .utils import b64e, b64d, ts_encode, ts_decode, validate_name, validate_value, dump_json

log = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Lease = Union[timedelta, str, None]


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


@dataclass
class SecretRecord:
	name: str
	ciphertext: bytes
	nonce: bytes
	created_at: datetime
	updated_at: datetime
	expires_at: Optional[datetime] = None

	def state(self, now: datetime) -> RecordState:
		return lease_state(self.expires_at, now)

	def to_dict(self) -> Dict[str, Any]:
		return {
			'name': self.name,
			'ciphertext': b64e(self.ciphertext),
			'nonce': b64e(self.nonce),
			'created_at': ts_encode(self.created_at),
			'updated_at': ts_encode(self.updated_at),
			'expires_at': ts_encode(self.expires_at),
		}

	@classmethod
	def from_dict(cls, raw: Dict[str, Any]) -> 'SecretRecord':
		try:
			created = ts_decode(raw['created_at'])
			if created is None:
				raise FormatError('Malformed record: missing created_at')
			return cls(
				name=str(raw['name']),
				ciphertext=b64d(raw['ciphertext']),
				nonce=b64d(raw['nonce']),
				created_at=created,
				updated_at=ts_decode(raw.get('updated_at')) or created,
				expires_at=ts_decode(raw.get('expires_at')),
			)
		except (KeyError, TypeError) as e:
			raise FormatError(f'Malformed record: {e}') from e


@dataclass(frozen=True)
class VaultStats:
	total: int
	active_leases: int
	expired_but_not_swept: int
	size_bytes: int


class Vault:
	"""Ordered collection of secret records unlocked by a derived key."""

	def __init__(self, key: DerivedKey, records: Optional[Dict[str, SecretRecord]] = None,
			created_at: Optional[datetime] = None, clock: Optional[Clock] = None):
		self._key = key
		self._records: Dict[str, SecretRecord] = dict(records or {})
		self._clock = clock or utcnow
		self.created_at = created_at or self._clock()
		self.dirty = False

	# -- serialization -------------------------------------------------
	def to_dict(self) -> Dict[str, Any]:
		return {
			'version': FORMAT_VERSION,
			'created_at': ts_encode(self.created_at),
			'records': self.export_records(),
		}

	@classmethod
	def from_dict(cls, raw: Dict[str, Any], key: DerivedKey, clock: Optional[Clock] = None) -> 'Vault':
		if not isinstance(raw, dict):
			raise FormatError('Vault document must be an object')
		if raw.get('version') != FORMAT_VERSION:
			raise FormatError(f"Unsupported vault version: {raw.get('version')!r}")
		items = raw.get('records')
		if not isinstance(items, list):
			raise FormatError('Vault records must be a list')
		records: Dict[str, SecretRecord] = {}
		for item in items:
			if not isinstance(item, dict):
				raise FormatError('Vault record must be an object')
			rec = SecretRecord.from_dict(item)
			if rec.name in records:
				raise FormatError(f"Duplicate record '{rec.name}'")
			records[rec.name] = rec
		try:
			created = ts_decode(raw['created_at'])
		except KeyError as e:
			raise FormatError('Vault missing created_at') from e
		return cls(key, records, created, clock)

	def export_records(self) -> List[Dict[str, Any]]:
		"""Encrypted records only, sorted by name; the hook for backups."""
		return [self._records[n].to_dict() for n in sorted(self._records)]

	# -- helpers -------------------------------------------------------
	def _now(self) -> datetime:
		return self._clock()

	def _expiry(self, now: datetime, lease: Lease) -> Optional[datetime]:
		if lease is None:
			return None
		if isinstance(lease, str):
			lease = parse_duration(lease)
		if lease < timedelta(0):
			raise ParseError('Lease cannot be negative')
		try:
			return now + lease
		except OverflowError:
			raise ParseError('Lease extends past the supported date range') from None

	def _evict(self, name: str) -> None:
		del self._records[name]
		self.dirty = True
		log.info("Evicted expired secret '%s'", name)

	def _live(self, name: str) -> SecretRecord:
		"""Fetch a readable record; an expired one stays in place until evicted."""
		rec = self._records.get(name)
		if rec is None:
			raise NotFound(name)
		if is_expired(rec.expires_at, self._now()):
			raise Expired(name)
		return rec

	def _seal(self, value: str) -> Tuple[bytes, bytes]:
		plain = bytearray(value.encode('utf-8'))
		try:
			return encrypt(self._key, plain)
		finally:
			secure_zero(plain)

	# -- operations ----------------------------------------------------
	def add(self, name: str, value: str, lease: Lease = None) -> None:
		validate_name(name); validate_value(name, value)
		now = self._now()
		existing = self._records.get(name)
		if existing is not None:
			if not is_expired(existing.expires_at, now):
				raise DuplicateName(name)
			self._evict(name)
		expires_at = self._expiry(now, lease)
		ct, nonce = self._seal(value)
		self._records[name] = SecretRecord(name, ct, nonce, now, now, expires_at)
		self.dirty = True
		log.info("Added secret '%s'%s", name, ' (leased)' if expires_at else '')

	def get(self, name: str) -> str:
		rec = self._live(name)
		try:
			plain = decrypt(self._key, rec.ciphertext, rec.nonce)
		except AuthenticationError:
			log.warning("Secret '%s' failed authentication", name)
			raise CorruptedRecord(name) from None
		try:
			return plain.decode('utf-8')
		except UnicodeDecodeError:
			raise CorruptedRecord(name) from None
		finally:
			secure_zero(plain)

	def update(self, name: str, value: str) -> None:
		"""Re-encrypt a value under a fresh nonce; the lease is kept."""
		rec = self._live(name)
		validate_value(name, value)
		rec.ciphertext, rec.nonce = self._seal(value)
		rec.updated_at = self._now()
		self.dirty = True
		log.info("Updated secret '%s'", name)

	def list(self) -> List[Tuple[str, Optional[datetime]]]:
		self.sweep_expired()
		return [(n, self._records[n].expires_at) for n in sorted(self._records)]

	def remove(self, name: str) -> None:
		if name not in self._records:
			raise NotFound(name)
		del self._records[name]
		self.dirty = True
		log.info("Removed secret '%s'", name)

	def set_expiry(self, name: str, lease: Lease) -> None:
		"""Replace the lease outright; leases never stack."""
		rec = self._live(name)
		if lease is None:
			raise ParseError('A lease duration is required')
		rec.expires_at = self._expiry(self._now(), lease)
		self.dirty = True

	def clear_expiry(self, name: str) -> None:
		rec = self._live(name)
		if rec.expires_at is not None:
			rec.expires_at = None
			self.dirty = True

	def evict_expired(self, name: str) -> bool:
		"""Lazy eviction of one record after an access raised Expired."""
		rec = self._records.get(name)
		if rec is None or not is_expired(rec.expires_at, self._now()):
			return False
		self._evict(name)
		return True

	def sweep_expired(self) -> int:
		now = self._now()
		expired = [n for n, r in self._records.items() if is_expired(r.expires_at, now)]
		for n in expired:
			del self._records[n]
		if expired:
			self.dirty = True
		log.debug('Sweep removed %d expired secret(s)', len(expired))
		return len(expired)

	def state(self, name: str) -> RecordState:
		rec = self._records.get(name)
		return rec.state(self._now()) if rec else RecordState.REMOVED

	def stats(self) -> VaultStats:
		now = self._now()
		states = [r.state(now) for r in self._records.values()]
		return VaultStats(
			total=len(states),
			active_leases=states.count(RecordState.LEASED),
			expired_but_not_swept=states.count(RecordState.EXPIRED),
			size_bytes=len(dump_json(self.to_dict())),
		)

	def __len__(self) -> int:
		return len(self._records)

	def __contains__(self, name: object) -> bool:
		return name in self._records

	def __iter__(self) -> Iterator[str]:
		return iter(sorted(self._records))
