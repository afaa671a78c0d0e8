from datetime import datetime, timedelta, timezone
import pytest
from sentinelvault.lib.crypto import KdfParams, derive_key, generate_salt
from sentinelvault.lib.storage import VaultStorage
from sentinelvault.lib.vault import Vault

# Argon2id floor values; real defaults would make every test take seconds
FAST_PARAMS = KdfParams(memory_cost=8, iterations=1, parallelism=1)


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.setenv('SENTINELVAULT_HOME', str(tmp_path / 'vault'))
    monkeypatch.setenv('SENTINELVAULT_KDF_MEMORY_COST', str(FAST_PARAMS.memory_cost))
    monkeypatch.setenv('SENTINELVAULT_KDF_ITERATIONS', str(FAST_PARAMS.iterations))
    monkeypatch.setenv('SENTINELVAULT_KDF_PARALLELISM', str(FAST_PARAMS.parallelism))


@pytest.fixture
def params():
    return FAST_PARAMS


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def key():
    k = derive_key('master-pw', generate_salt(), FAST_PARAMS)
    yield k
    k.wipe()


@pytest.fixture
def vault(key, clock):
    return Vault(key, clock=clock)


@pytest.fixture
def storage(tmp_path):
    return VaultStorage(tmp_path / 'vault')
