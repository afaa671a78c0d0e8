"""Project configuration settings.

Constants live here; anything a user may override through the environment
is resolved at call time so tests can monkeypatch it.
"""

from pathlib import Path
import os

# Security / crypto
SALT_LENGTH = 32
KEY_LENGTH = 32   # AES-256
NONCE_LENGTH = 12  # GCM nonce
AUTH_TAG_LENGTH = 16  # GCM tag length

# Argon2id defaults (OWASP)
KDF_ALGORITHM = "argon2id"
DEFAULT_MEMORY_COST = 65536  # KiB, 64 MB
DEFAULT_ITERATIONS = 3
DEFAULT_PARALLELISM = 4

# Known plaintext encrypted into the identity verifier
VERIFIER_PLAINTEXT = b"SENTINELVAULT_MASTER_KEY_VERIFICATION"

# Vault files
DEFAULT_VAULT_DIR = Path("~/.sentinelvault")
IDENTITY_FILENAME = "identity.json"
VAULT_FILENAME = "vault.json"
LOCK_FILENAME = ".lock"
FORMAT_VERSION = 1

# Limits
MAX_NAME_LENGTH = 255
MAX_VALUE_LENGTH = 10_000
MIN_PASSWORD_LENGTH = 8

# Atomic rename retries on transient contention
REPLACE_RETRIES = 3
REPLACE_RETRY_DELAY = 0.05  # seconds

# Logging
LOG_LEVEL = "WARNING"


def vault_dir() -> Path:
	env_dir = os.environ.get("SENTINELVAULT_HOME")
	return Path(env_dir).expanduser() if env_dir else DEFAULT_VAULT_DIR.expanduser()


def kdf_settings() -> dict:
	return {
		"memory_cost": int(os.environ.get("SENTINELVAULT_KDF_MEMORY_COST", DEFAULT_MEMORY_COST)),
		"iterations": int(os.environ.get("SENTINELVAULT_KDF_ITERATIONS", DEFAULT_ITERATIONS)),
		"parallelism": int(os.environ.get("SENTINELVAULT_KDF_PARALLELISM", DEFAULT_PARALLELISM)),
	}


def log_level() -> str:
	return os.environ.get("SENTINELVAULT_LOG_LEVEL", LOG_LEVEL).upper()


__all__ = [
	'SALT_LENGTH','KEY_LENGTH','NONCE_LENGTH','AUTH_TAG_LENGTH',
	'KDF_ALGORITHM','DEFAULT_MEMORY_COST','DEFAULT_ITERATIONS','DEFAULT_PARALLELISM',
	'VERIFIER_PLAINTEXT','DEFAULT_VAULT_DIR','IDENTITY_FILENAME','VAULT_FILENAME','LOCK_FILENAME',
	'FORMAT_VERSION','MAX_NAME_LENGTH','MAX_VALUE_LENGTH','MIN_PASSWORD_LENGTH',
	'REPLACE_RETRIES','REPLACE_RETRY_DELAY','LOG_LEVEL','vault_dir','kdf_settings','log_level'
]
