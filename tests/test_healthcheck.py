import pytest

from kdcsvc import entrypoint
from kdcsvc import realm_healthcheck
from kdcsvc.config import load_paths
from kdcsvc.realm_healthcheck import healthcheck, FAILURE_MESSAGE

def lookup_for(*running):
	def lookup(name, pidfile):
		return object() if name in running else None
	return lookup

def test_healthy(base_environ, capsys):
	paths = load_paths(base_environ)
	assert healthcheck(paths, lookup = lookup_for('krb5kdc', 'kadmind')) == 0
	assert capsys.readouterr().out == ''

@pytest.mark.parametrize('running', [ ( 'kadmind', ), ( 'krb5kdc', ), () ])
def test_unhealthy(base_environ, capsys, running):
	paths = load_paths(base_environ)
	assert healthcheck(paths, lookup = lookup_for(*running)) == 1
	assert capsys.readouterr().out == FAILURE_MESSAGE + '\n'

def test_retries_run_out(base_environ):
	paths = load_paths(base_environ)
	sleeps = []
	assert healthcheck(paths, retries = 2, pause = 1, lookup = lookup_for(),
			sleep = sleeps.append) == 1
	assert sleeps == [ 1, 1 ]

def test_recovers_within_retries(base_environ):
	paths = load_paths(base_environ)
	calls = []
	def lookup(name, pidfile):
		calls.append(name)
		return object() if len(calls) > 2 else None
	sleeps = []
	assert healthcheck(paths, retries = 3, pause = 2, lookup = lookup,
			sleep = sleeps.append) == 0
	assert sleeps == [ 2 ]

def test_entrypoint_healthcheck_with_no_daemons(base_environ, monkeypatch, capsys):
	monkeypatch.setenv('KDC_RUN_DIR', base_environ['KDC_RUN_DIR'])
	monkeypatch.setenv('VERBOSE', '1')
	with pytest.raises(SystemExit) as e:
		entrypoint.main([ 'healthcheck' ])
	assert e.value.code == 1
	assert FAILURE_MESSAGE in capsys.readouterr().out

def test_healthcheck_command_is_case_insensitive(base_environ, monkeypatch):
	monkeypatch.setenv('KDC_RUN_DIR', base_environ['KDC_RUN_DIR'])
	monkeypatch.setenv('VERBOSE', '1')
	with pytest.raises(SystemExit) as e:
		entrypoint.main([ 'HealthCheck', '-V' ])
	assert e.value.code == 1

def test_standalone_main(base_environ, monkeypatch):
	monkeypatch.setenv('KDC_RUN_DIR', base_environ['KDC_RUN_DIR'])
	monkeypatch.setenv('VERBOSE', '1')
	with pytest.raises(SystemExit) as e:
		realm_healthcheck.main([ '-R', '0' ])
	assert e.value.code == 1
