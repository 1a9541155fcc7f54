import signal

import pytest

from kdcsvc import common

@pytest.fixture(autouse = True)
def loglevel():
	old = common.current_loglevel
	common.set_loglevel(1)
	yield
	common.set_loglevel(old)

@pytest.fixture(autouse = True)
def restore_signals():
	saved = { s: signal.getsignal(s) for s in ( signal.SIGTERM, signal.SIGINT ) }
	yield
	for s, handler in saved.items():
		signal.signal(s, handler)

# Just the filesystem layout, pointed at a scratch directory. Everything else
# is left at its default.
@pytest.fixture
def base_environ(tmp_path):
	return {
		'KDC_STATE_DIR': str(tmp_path / 'state'),
		'KRB5_CONFIG': str(tmp_path / 'etc' / 'krb5.conf'),
		'KDC_LOG_DIR': str(tmp_path / 'log' / 'krb5'),
		'KDC_RUN_DIR': str(tmp_path / 'run'),
		'CA_ANCHORS_DIR': str(tmp_path / 'anchors'),
	}

@pytest.fixture
def environ(base_environ):
	e = dict(base_environ)
	e.update({
		'REALM_NAME': 'HOME.LAN',
		'MASTER_PASS': 'master-secret',
		'BASE_DN': 'dc=home,dc=lan',
		'KDC_PASS': 'kdc-secret',
		'ADMIN_PASS': 'admin-secret',
		'DM_PASS': 'dm-secret',
	})
	return e

@pytest.fixture
def ldap_environ(environ):
	e = dict(environ)
	e['LDAP_HOST'] = 'ldaphost'
	return e
