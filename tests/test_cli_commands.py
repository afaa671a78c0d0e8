import json
import pytest
from click.testing import CliRunner
from sentinelvault.cli.commands import cli

PW = 'password1'


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def initialized(runner):
    r = runner.invoke(cli, ['init'], input=f'{PW}\n{PW}\n')
    assert r.exit_code == 0, r.output
    return runner


def test_cli_help(runner):
    r = runner.invoke(cli, ['--help'])
    assert r.exit_code == 0
    for cmd in ('init', 'add', 'get', 'list', 'expire', 'remove', 'sweep', 'stats', 'backup'):
        assert cmd in r.output

def test_cli_init(initialized, tmp_path):
    assert (tmp_path / 'vault' / 'identity.json').exists()
    assert (tmp_path / 'vault' / 'vault.json').exists()

def test_cli_init_rejects_short_password(runner, tmp_path):
    r = runner.invoke(cli, ['init'], input='short\nshort\n')
    assert r.exit_code == 1
    assert 'at least 8 characters' in r.output
    assert not (tmp_path / 'vault' / 'identity.json').exists()

def test_cli_reinit_needs_force_and_confirmation(initialized):
    runner = initialized
    r = runner.invoke(cli, ['init'], input=f'{PW}\n{PW}\n')
    assert r.exit_code == 1
    assert '--force' in r.output
    declined = runner.invoke(cli, ['init', '--force'], input=f'{PW}\n{PW}\nn\n')
    assert declined.exit_code == 1
    runner.invoke(cli, ['add', 'k'], input=f'{PW}\nv\n')
    r = runner.invoke(cli, ['init', '--force'], input='password2\npassword2\ny\n')
    assert r.exit_code == 0
    assert 'initialized' in r.output
    lst = runner.invoke(cli, ['list'], input='password2\n')
    assert 'No secrets stored' in lst.output

def test_cli_add_get_remove(initialized):
    runner = initialized
    add = runner.invoke(cli, ['add', 'k1'], input=f'{PW}\nv1\n')
    assert add.exit_code == 0
    assert "Secret 'k1' added" in add.output
    get = runner.invoke(cli, ['get', 'k1'], input=f'{PW}\n')
    assert get.exit_code == 0
    assert get.output.rstrip().endswith('v1')
    rm = runner.invoke(cli, ['remove', 'k1'], input=f'{PW}\n')
    assert rm.exit_code == 0
    gone = runner.invoke(cli, ['get', 'k1'], input=f'{PW}\n')
    assert gone.exit_code == 1
    assert "Secret 'k1' not found" in gone.output

def test_cli_add_with_value_option_and_duplicate(initialized):
    runner = initialized
    assert runner.invoke(cli, ['add', 'api', '--value', 'abc'], input=f'{PW}\n').exit_code == 0
    dup = runner.invoke(cli, ['add', 'api', '--value', 'xyz'], input=f'{PW}\n')
    assert dup.exit_code == 1
    assert 'already exists' in dup.output
    assert 'xyz' not in dup.output

def test_cli_update(initialized):
    runner = initialized
    runner.invoke(cli, ['add', 'k', '--value', 'old'], input=f'{PW}\n')
    assert runner.invoke(cli, ['update', 'k', '--value', 'new'], input=f'{PW}\n').exit_code == 0
    assert runner.invoke(cli, ['get', 'k'], input=f'{PW}\n').output.rstrip().endswith('new')

def test_cli_list_and_expire(initialized):
    runner = initialized
    runner.invoke(cli, ['add', 'b', '--value', '2'], input=f'{PW}\n')
    runner.invoke(cli, ['add', 'a', '--value', '1', '--lease', '1h'], input=f'{PW}\n')
    lst = runner.invoke(cli, ['list'], input=f'{PW}\n')
    assert lst.exit_code == 0
    assert lst.output.index('- a (expires:') < lst.output.index('- b (no expiration)')
    r = runner.invoke(cli, ['expire', 'b', '--after', '7d'], input=f'{PW}\n')
    assert r.exit_code == 0
    assert "Set expiry for 'b' to 7d" in r.output
    r = runner.invoke(cli, ['expire', 'a', '--clear'], input=f'{PW}\n')
    assert r.exit_code == 0
    lst = runner.invoke(cli, ['list'], input=f'{PW}\n')
    assert '- a (no expiration)' in lst.output
    assert '- b (expires:' in lst.output

def test_cli_expire_usage_errors(initialized):
    runner = initialized
    r = runner.invoke(cli, ['expire', 'x'], input=f'{PW}\n')
    assert r.exit_code == 2
    r = runner.invoke(cli, ['expire', 'x', '--after', 'bogus'], input=f'{PW}\n')
    assert r.exit_code == 1
    assert 'bogus' in r.output

def test_cli_expired_secret_and_stats(initialized):
    runner = initialized
    runner.invoke(cli, ['add', 'gone', '--value', 'v', '--lease', '0s'], input=f'{PW}\n')
    runner.invoke(cli, ['add', 'stay', '--value', 'v', '--lease', '1d'], input=f'{PW}\n')
    st = runner.invoke(cli, ['stats'], input=f'{PW}\n')
    assert 'Total secrets: 2' in st.output
    assert 'Active leases: 1' in st.output
    assert 'Expired (not yet swept): 1' in st.output
    r = runner.invoke(cli, ['get', 'gone'], input=f'{PW}\n')
    assert r.exit_code == 1
    assert 'has expired' in r.output
    st = runner.invoke(cli, ['stats'], input=f'{PW}\n')
    assert 'Total secrets: 1' in st.output
    assert 'Expired (not yet swept): 0' in st.output

def test_cli_sweep(initialized):
    runner = initialized
    runner.invoke(cli, ['add', 'a', '--value', 'v', '--lease', '0s'], input=f'{PW}\n')
    runner.invoke(cli, ['add', 'b', '--value', 'v', '--lease', '0m'], input=f'{PW}\n')
    assert 'Removed 2 expired' in runner.invoke(cli, ['sweep'], input=f'{PW}\n').output
    assert 'Removed 0 expired' in runner.invoke(cli, ['sweep'], input=f'{PW}\n').output

def test_cli_wrong_password(initialized):
    r = initialized.invoke(cli, ['list'], input='not-the-password\n')
    assert r.exit_code == 1
    assert 'Invalid master password' in r.output
    assert 'not-the-password' not in r.output.split('\n', 1)[-1]

def test_cli_not_initialized(runner):
    r = runner.invoke(cli, ['list'], input=f'{PW}\n')
    assert r.exit_code == 1
    assert "Run 'sentinel init' first" in r.output

def test_cli_vault_dir_option(runner, tmp_path):
    target = tmp_path / 'custom'
    r = runner.invoke(cli, ['--vault-dir', str(target), 'init'], input=f'{PW}\n{PW}\n')
    assert r.exit_code == 0
    assert (target / 'identity.json').exists()

def test_cli_backup_json(initialized):
    runner = initialized
    runner.invoke(cli, ['add', 'api', '--value', 'plaintext-value'], input=f'{PW}\n')
    r = runner.invoke(cli, ['backup'], input=f'{PW}\n')
    assert r.exit_code == 0
    assert 'plaintext-value' not in r.output
    doc = json.loads(r.output[r.output.index('{'):])
    assert doc['vault']['records'][0]['name'] == 'api'
    assert set(doc['identity']) >= {'salt', 'derivation_params', 'verifier'}
