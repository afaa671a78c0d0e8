"""Persistence: the identity and vault files, atomic writes and locking.

Layout of the vault directory::

	identity.json   salt, Argon2id parameters, verifier
	vault.json      encrypted secret records
	.lock           advisory lock held for one load-mutate-save cycle

Two invocations racing without the lock would be last-write-wins; the lock
makes the second one fail fast with VaultBusy instead.
"""
from __future__ import annotations
import json, logging, os, tempfile, time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional
from sentinelvault.config.settings import (
	IDENTITY_FILENAME, VAULT_FILENAME, LOCK_FILENAME, REPLACE_RETRIES, REPLACE_RETRY_DELAY, vault_dir
)
from .crypto import DerivedKey, KdfParams
from .errors import Expired, FormatError, StorageError, VaultBusy, VaultNotInitialized
from .identity import Identity, initialize, verify
from .utils import dump_json
from .vault import Clock, Vault

try:
	import fcntl
except ImportError:  # pragma: no cover - non-POSIX
	fcntl = None

log = logging.getLogger(__name__)

_TRANSIENT = (PermissionError, BlockingIOError, InterruptedError)


class VaultStorage:
	def __init__(self, root: Path | None = None):
		# Resolve dynamically to honor environment overrides in tests
		self.root = Path(root) if root is not None else vault_dir()
		self.identity_path = self.root / IDENTITY_FILENAME
		self.vault_path = self.root / VAULT_FILENAME
		self.lock_path = self.root / LOCK_FILENAME

	def exists(self) -> bool:
		return self.identity_path.exists()

	# -- setup ---------------------------------------------------------
	def init(self, password: str, params: Optional[KdfParams] = None, force: bool = False) -> Identity:
		"""Create identity + empty vault. With ``force`` any existing vault is destroyed."""
		if self.exists() and not force:
			raise StorageError('Vault already initialized')
		with self.lock():
			if self.exists():
				log.warning('Re-initializing vault at %s; existing secrets become unrecoverable', self.root)
			identity = initialize(password, params)
			with verify(identity, password) as key:
				# Vault first: the identity file marks a completed init
				self.save_vault(Vault(key))
			self.save_identity(identity)
		log.info('Vault initialized at %s', self.root)
		return identity

	@contextmanager
	def unlock(self, password: str, clock: Optional[Clock] = None) -> Iterator[Vault]:
		"""Lock, verify, load; yield the vault; save it if it changed.

		The derived key is wiped on every exit path. An access that raised
		Expired evicts that record and the eviction is persisted.
		"""
		with self.lock():
			identity = self.load_identity()
			key = verify(identity, password)
			try:
				vault = self.load_vault(key, clock)
				try:
					yield vault
				except Expired as e:
					vault.evict_expired(e.name)
					if vault.dirty:
						self.save_vault(vault)
					raise
				if vault.dirty:
					self.save_vault(vault)
			finally:
				key.wipe()

	# -- identity / vault ----------------------------------------------
	def load_identity(self) -> Identity:
		return Identity.from_dict(self._read(self.identity_path))

	def save_identity(self, identity: Identity) -> None:
		self._write(self.identity_path, identity.to_dict())

	def load_vault(self, key: DerivedKey, clock: Optional[Clock] = None) -> Vault:
		return Vault.from_dict(self._read(self.vault_path), key, clock)

	def save_vault(self, vault: Vault) -> None:
		self._write(self.vault_path, vault.to_dict())
		vault.dirty = False
		log.info('Vault saved (%d secret(s)) -> %s', len(vault), self.vault_path)

	# -- locking -------------------------------------------------------
	@contextmanager
	def lock(self) -> Iterator[None]:
		"""Non-blocking advisory lock; raises VaultBusy if already held."""
		if fcntl is None:  # pragma: no cover
			yield
			return
		self._ensure_dir()
		try:
			fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o600)
		except OSError as e:
			raise StorageError(f'Cannot open lock file: {e.strerror}') from e
		try:
			try:
				fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
			except (BlockingIOError, PermissionError):
				log.warning('Vault at %s is locked by another process', self.root)
				raise VaultBusy(self.root) from None
			try:
				yield
			finally:
				fcntl.flock(fd, fcntl.LOCK_UN)
		finally:
			os.close(fd)

	# -- file I/O ------------------------------------------------------
	def _ensure_dir(self) -> None:
		try:
			self.root.mkdir(mode=0o700, parents=True, exist_ok=True)
		except OSError as e:
			raise StorageError(f'Cannot create vault directory: {e.strerror}') from e

	def _read(self, path: Path) -> Dict[str, Any]:
		try:
			raw = path.read_bytes()
		except FileNotFoundError:
			raise VaultNotInitialized(path) from None
		except OSError as e:
			raise StorageError(f'Cannot read {path.name}: {e.strerror}') from e
		try:
			doc = json.loads(raw.decode('utf-8'))
		except (UnicodeDecodeError, json.JSONDecodeError) as e:
			raise FormatError(f'{path.name} is not valid JSON') from e
		if not isinstance(doc, dict):
			raise FormatError(f'{path.name} must contain a JSON object')
		return doc

	def _write(self, path: Path, doc: Dict[str, Any]) -> None:
		"""Write via temp file + rename so a crash never leaves a partial file."""
		self._ensure_dir()
		data = dump_json(doc)
		try:
			# mkstemp creates the file 0o600 before any byte is written
			fd, tmp_name = tempfile.mkstemp(prefix=f'.{path.name}.', suffix='.tmp', dir=self.root)
		except OSError as e:
			raise StorageError(f'Cannot create temp file: {e.strerror}') from e
		tmp = Path(tmp_name)
		try:
			with os.fdopen(fd, 'wb') as f:
				f.write(data)
				f.flush()
				os.fsync(f.fileno())
			self._replace(tmp, path)
		except OSError as e:
			tmp.unlink(missing_ok=True)
			raise StorageError(f'Cannot write {path.name}: {e.strerror}') from e
		except BaseException:
			tmp.unlink(missing_ok=True)
			raise

	def _replace(self, tmp: Path, path: Path) -> None:
		for attempt in range(1, REPLACE_RETRIES + 1):
			try:
				os.replace(tmp, path)
				return
			except _TRANSIENT:
				if attempt == REPLACE_RETRIES:
					raise
				log.debug('Rename of %s contended (attempt %d), retrying', path.name, attempt)
				time.sleep(REPLACE_RETRY_DELAY)
