"""Cryptographic engine: Argon2id key derivation + AES-256-GCM.

Invariant: every call to :func:`encrypt` draws a fresh random nonce. No
function here accepts a caller-supplied nonce for encryption, so a nonce is
never reused under the same key.
"""
from __future__ import annotations
import ctypes, secrets
from dataclasses import dataclass, asdict
from typing import Tuple
from argon2.low_level import hash_secret_raw, Type
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from sentinelvault.config.settings import (
	SALT_LENGTH, KEY_LENGTH, NONCE_LENGTH, AUTH_TAG_LENGTH, KDF_ALGORITHM, kdf_settings
)
from .errors import CryptoError, AuthenticationError


def secure_zero(data: bytearray | memoryview) -> None:
	"""Overwrite a mutable buffer with zeros in place.

	Best-effort: immutable copies (``bytes``/``str``) made elsewhere cannot be
	reached from here.
	"""
	if len(data) == 0:
		return
	if isinstance(data, bytearray):
		addr = ctypes.addressof((ctypes.c_char * len(data)).from_buffer(data))
		ctypes.memset(addr, 0, len(data))
	else:
		for i in range(len(data)):
			data[i] = 0


@dataclass(frozen=True)
class KdfParams:
	memory_cost: int  # KiB
	iterations: int
	parallelism: int
	algorithm: str = KDF_ALGORITHM

	@classmethod
	def from_settings(cls) -> 'KdfParams':
		return cls(**kdf_settings())

	@classmethod
	def from_dict(cls, raw: dict) -> 'KdfParams':
		return cls(
			memory_cost=int(raw['memory_cost']),
			iterations=int(raw['iterations']),
			parallelism=int(raw['parallelism']),
			algorithm=str(raw.get('algorithm', KDF_ALGORITHM)),
		)

	def to_dict(self) -> dict:
		return asdict(self)


class DerivedKey:
	"""Key material in a wipeable buffer; use as a context manager."""

	__slots__ = ('_buf',)

	def __init__(self, material: bytes | bytearray):
		if len(material) != KEY_LENGTH:
			raise CryptoError('Bad key length')
		self._buf = bytearray(material)

	@property
	def material(self) -> bytearray:
		if self.wiped:
			raise CryptoError('Key has been wiped')
		return self._buf

	@property
	def wiped(self) -> bool:
		return not any(self._buf)

	def wipe(self) -> None:
		secure_zero(self._buf)

	def __enter__(self) -> 'DerivedKey':
		return self

	def __exit__(self, *exc) -> None:
		self.wipe()

	def __del__(self):
		if getattr(self, '_buf', None) is not None:
			self.wipe()

	def __repr__(self) -> str:
		return '<DerivedKey wiped>' if self.wiped else '<DerivedKey ***>'


def generate_salt() -> bytes:
	return secrets.token_bytes(SALT_LENGTH)


def derive_key(password: str, salt: bytes, params: KdfParams) -> DerivedKey:
	"""Derive a 32-byte key with Argon2id. Same inputs give the same key."""
	if not password:
		raise CryptoError('Password empty')
	if params.algorithm != KDF_ALGORITHM:
		raise CryptoError(f'Unsupported KDF: {params.algorithm}')
	secret = bytearray(password.encode('utf-8'))
	try:
		raw = hash_secret_raw(
			secret=bytes(secret), salt=salt,
			time_cost=params.iterations, memory_cost=params.memory_cost,
			parallelism=params.parallelism, hash_len=KEY_LENGTH, type=Type.ID,
		)
	finally:
		secure_zero(secret)
	return DerivedKey(raw)


def _cipher(key: DerivedKey, nonce: bytes, tag: bytes | None = None) -> Cipher:
	return Cipher(algorithms.AES(key.material), modes.GCM(nonce, tag))


def encrypt(key: DerivedKey, plaintext: bytes | bytearray) -> Tuple[bytes, bytes]:
	"""Return ``(ciphertext || tag, nonce)``."""
	nonce = secrets.token_bytes(NONCE_LENGTH)
	enc = _cipher(key, nonce).encryptor()
	ct = enc.update(bytes(plaintext)) + enc.finalize()
	return ct + enc.tag, nonce


def decrypt(key: DerivedKey, ciphertext: bytes, nonce: bytes) -> bytearray:
	"""Authenticate and decrypt; the caller wipes the returned buffer.

	Raises AuthenticationError on a wrong key, any modified bit, or a
	malformed nonce. Unauthenticated plaintext never leaves this function.
	"""
	if len(nonce) != NONCE_LENGTH or len(ciphertext) < AUTH_TAG_LENGTH:
		raise AuthenticationError('Decrypt failed')
	ct, tag = ciphertext[:-AUTH_TAG_LENGTH], ciphertext[-AUTH_TAG_LENGTH:]
	dec = _cipher(key, nonce, tag).decryptor()
	buf = bytearray(len(ct) + 15)
	written = dec.update_into(ct, buf)
	try:
		dec.finalize()
	except InvalidTag:
		secure_zero(buf)
		raise AuthenticationError('Decrypt failed') from None
	plaintext = buf[:written]
	secure_zero(buf)
	return plaintext
