"""Exception taxonomy shared by the engine and the CLI.

Messages carry secret names at most; never passwords or values.
"""
from __future__ import annotations

class SentinelError(Exception):
	"""Base for every failure the engine reports."""

# Crypto / identity
class CryptoError(SentinelError):
	"""Misuse of the crypto engine (bad key length, empty password, unknown KDF)."""

class AuthenticationError(CryptoError):
	def __init__(self, message: str = 'Authentication failed'):
		super().__init__(message)

# Duration parsing
class ParseError(SentinelError, ValueError): ...

# Record-level
class VaultError(SentinelError):
	def __init__(self, name: str, message: str):
		super().__init__(message)
		self.name = name

class DuplicateName(VaultError):
	def __init__(self, name: str):
		super().__init__(name, f"Secret '{name}' already exists")

class NotFound(VaultError):
	def __init__(self, name: str):
		super().__init__(name, f"Secret '{name}' not found")

class Expired(VaultError):
	def __init__(self, name: str):
		super().__init__(name, f"Secret '{name}' has expired")

class CorruptedRecord(VaultError):
	def __init__(self, name: str):
		super().__init__(name, f"Secret '{name}' failed authentication (tampered or corrupted)")

class NameTooLong(VaultError):
	def __init__(self, name: str, limit: int):
		super().__init__(name[:32] + '...', f'Secret name too long (max {limit} characters)')

class ValueTooLarge(VaultError):
	def __init__(self, name: str, limit: int):
		super().__init__(name, f'Secret value too long (max {limit:,} characters)')

class InvalidName(VaultError):
	def __init__(self, name: str, reason: str):
		super().__init__(name, f'Invalid secret name: {reason}')

class InvalidValue(VaultError):
	def __init__(self, name: str, reason: str):
		super().__init__(name, f'Invalid secret value: {reason}')

# Persistence
class StorageError(SentinelError):
	"""Filesystem-level failure while reading or writing vault files."""

class VaultNotInitialized(StorageError):
	def __init__(self, path=None):
		super().__init__('Vault not initialized')
		self.path = path

class VaultBusy(StorageError):
	def __init__(self, path=None):
		super().__init__('Vault is in use by another process')
		self.path = path

class FormatError(StorageError): ...

# Backup collaborator
class BackupError(SentinelError): ...
