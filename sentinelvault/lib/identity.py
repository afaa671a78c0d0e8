"""Identity record: password verification material, kept apart from the vault.

The identity holds the salt, the Argon2id parameters and a verifier (the
encryption of a known plaintext under the derived key). It never holds
anything about the secrets themselves.
"""
from __future__ import annotations
import hmac, logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from argon2.exceptions import HashingError
from sentinelvault.config.settings import SALT_LENGTH, VERIFIER_PLAINTEXT, FORMAT_VERSION
from .crypto import DerivedKey, KdfParams, derive_key, encrypt, decrypt, generate_salt, secure_zero
from .errors import AuthenticationError, CryptoError, FormatError
from .utils import b64e, b64d, ts_encode, ts_decode

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
	salt: bytes
	params: KdfParams
	verifier_ciphertext: bytes
	verifier_nonce: bytes
	created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

	def to_dict(self) -> Dict[str, Any]:
		return {
			'version': FORMAT_VERSION,
			'created_at': ts_encode(self.created_at),
			'salt': b64e(self.salt),
			'derivation_params': self.params.to_dict(),
			'verifier': {'ciphertext': b64e(self.verifier_ciphertext), 'nonce': b64e(self.verifier_nonce)},
		}

	@classmethod
	def from_dict(cls, raw: Dict[str, Any]) -> 'Identity':
		try:
			verifier = raw['verifier']
			ident = cls(
				salt=b64d(raw['salt']),
				params=KdfParams.from_dict(raw['derivation_params']),
				verifier_ciphertext=b64d(verifier['ciphertext']),
				verifier_nonce=b64d(verifier['nonce']),
				created_at=ts_decode(raw.get('created_at')) or datetime.now(timezone.utc),
			)
		except (KeyError, TypeError, ValueError) as e:
			raise FormatError(f'Malformed identity: {e}') from e
		if len(ident.salt) != SALT_LENGTH:
			raise FormatError('Malformed identity: bad salt length')
		return ident


def initialize(password: str, params: Optional[KdfParams] = None) -> Identity:
	"""Create a fresh identity. Overwriting an existing one orphans every secret."""
	params = params or KdfParams.from_settings()
	salt = generate_salt()
	with derive_key(password, salt, params) as key:
		ct, nonce = encrypt(key, VERIFIER_PLAINTEXT)
	log.info('Identity created (argon2id m=%d t=%d p=%d)', params.memory_cost, params.iterations, params.parallelism)
	return Identity(salt=salt, params=params, verifier_ciphertext=ct, verifier_nonce=nonce)


def verify(identity: Identity, password: str) -> DerivedKey:
	"""Return the derived key if ``password`` unlocks ``identity``.

	Every failure, whatever its cause, surfaces as the same AuthenticationError.
	"""
	try:
		key = derive_key(password, identity.salt, identity.params)
	except (CryptoError, HashingError, ValueError):
		raise AuthenticationError() from None
	try:
		plain = decrypt(key, identity.verifier_ciphertext, identity.verifier_nonce)
	except AuthenticationError:
		key.wipe()
		raise AuthenticationError() from None
	ok = hmac.compare_digest(bytes(plain), VERIFIER_PLAINTEXT)
	secure_zero(plain)
	if not ok:
		key.wipe()
		raise AuthenticationError()
	return key
