import os
from collections import namedtuple
from urllib.parse import urlsplit

from kdcsvc.common import log, warn, parse_bool
from kdcsvc.secret_env import file_env, random_password

class KdcConfigError(Exception):
	pass

# Every variable the container consumes. Each also honours a "<name>_FILE"
# companion (see secret_env.file_env), and all of them (plus the companions)
# are scrubbed from the environment handed to the daemons.
CONFIG_VARS = [
	'REALM_NAME', 'MASTER_PASS', 'BASE_DN',
	'KDC_DN', 'KDC_PASS', 'ADMIN_DN', 'ADMIN_PASS',
	'CONTAINER_DN', 'DM_DN', 'DM_PASS',
	'LDAP_HOST', 'LDAP_SCHEME', 'LDAP_PORT', 'LLDAP_UI_PORT', 'USE_LDAP',
	'DESTROY_AND_RECREATE', 'DEBUG_MODE',
	'LDAP_PROBE_ATTEMPTS', 'SHUTDOWN_TIMEOUT', 'ENCODE_KEY',
]

DEFAULT_PORTS = {
	'ldaps': 636,
	# LLDAP's plain-LDAP port, the directory this container usually sits
	# beside.
	'ldap': 3890,
}

class LdapEndpoint(namedtuple('LdapEndpoint', [ 'scheme', 'host', 'port' ])):
	__slots__ = ()

	@property
	def url(self):
		return f"{self.scheme}://{self.host}:{self.port}"

class Paths(namedtuple('Paths', [ 'state_dir', 'krb5_conf', 'log_dir',
				'run_dir', 'ca_anchors' ])):
	"""Filesystem layout.

	Everything under 'state_dir' lives on the persistent volume; krb5.conf
	is regenerated on every start and lives outside it.
	"""
	__slots__ = ()

	def _state(self, name):
		return os.path.join(self.state_dir, name)

	@property
	def kdc_conf(self):
		return self._state('kdc.conf')
	@property
	def marker(self):
		return self._state('configured')
	@property
	def principal_db(self):
		return self._state('principal')
	@property
	def acl(self):
		return self._state('kadm5.acl')
	@property
	def keytab(self):
		return self._state('kadm5.keytab')
	@property
	def ldap_stash(self):
		return self._state('ldap.creds')
	def master_stash(self, realm):
		return self._state(f".k5.{realm}")

	@property
	def kdc_log(self):
		return os.path.join(self.log_dir, 'krb5kdc.log')
	@property
	def kadmind_log(self):
		return os.path.join(self.log_dir, 'kadmind.log')
	@property
	def libs_log(self):
		return os.path.join(os.path.dirname(self.log_dir.rstrip('/')),
				'krb5libs.log')

	@property
	def kdc_pid(self):
		return os.path.join(self.run_dir, 'krb5kdc.pid')
	@property
	def kadmind_pid(self):
		return os.path.join(self.run_dir, 'kadmind.pid')

RealmConfig = namedtuple('RealmConfig', [
	'realm', 'master_pass', 'base_dn',
	'kdc_dn', 'kdc_pass', 'admin_dn', 'admin_pass', 'container_dn',
	'dm_dn', 'dm_pass',
	# LDAP_HOST as given (None if unset), and the endpoint parsed from it
	# (None if unset or invalid).
	'ldap_host', 'ldap',
	# None (not specified), True or False
	'use_ldap',
	'lldap_ui_port', 'destroy_and_recreate', 'debug_mode',
	'probe_attempts', 'shutdown_timeout',
	'paths',
])

def load_paths(environ = None):
	if environ is None:
		environ = os.environ
	return Paths(
		state_dir = environ.get('KDC_STATE_DIR') or '/var/kerberos/krb5kdc',
		krb5_conf = environ.get('KRB5_CONFIG') or '/etc/krb5.conf',
		log_dir = environ.get('KDC_LOG_DIR') or '/var/log/krb5',
		run_dir = environ.get('KDC_RUN_DIR') or '/var/run',
		ca_anchors = environ.get('CA_ANCHORS_DIR') or '/etc/pki/trust/anchors')

def _port(name, v):
	try:
		port = int(v)
	except (TypeError, ValueError):
		raise KdcConfigError(f"{name}='{v}' is not a port number")
	if port < 1 or port > 65535:
		raise KdcConfigError(f"{name}={port} is out of range")
	return port

def _positive_int(name, v, default):
	if v is None:
		return default
	try:
		i = int(v)
		if i > 0:
			return i
	except ValueError:
		pass
	warn(f"{name}='{v}' is not a positive integer, using {default}")
	return default

# LDAP_HOST is normally a bare hostname, but people paste URLs into it
# (ldap://lldap:3890) often enough that those are accepted too, in which case
# whatever the URL carries beats LDAP_SCHEME/LDAP_PORT.
def parse_endpoint(host, scheme = None, port = None):
	if not host:
		return None
	if '://' in host:
		u = urlsplit(host)
		if not u.hostname:
			raise KdcConfigError(f"LDAP_HOST='{host}' has no hostname")
		host_scheme = u.scheme.lower()
		try:
			host_port = u.port
		except ValueError:
			raise KdcConfigError(f"LDAP_HOST='{host}' has an invalid port")
		if scheme and scheme.lower() != host_scheme:
			log(f"LDAP_HOST carries scheme '{host_scheme}', ignoring LDAP_SCHEME={scheme}")
		scheme = host_scheme
		if host_port:
			port = host_port
		host = u.hostname
	scheme = (scheme or 'ldaps').lower()
	if scheme not in DEFAULT_PORTS:
		raise KdcConfigError(f"LDAP scheme '{scheme}' must be 'ldap' or 'ldaps'")
	if port is None:
		port = DEFAULT_PORTS[scheme]
	return LdapEndpoint(scheme, host, _port('LDAP_PORT', port))

def debug_requested(environ = None):
	return parse_bool('DEBUG_MODE', file_env('DEBUG_MODE', None, environ).value)

def load_config(environ = None):
	"""Resolve every configuration value, once, into a RealmConfig.

	The order (and hence the order of warnings in the container log)
	follows the order in which an operator would reason about the values:
	the realm, its master password, then the directory layout.
	"""
	if environ is None:
		environ = os.environ

	def value(name, default = None):
		return file_env(name, default, environ).value

	destroy = parse_bool('DESTROY_AND_RECREATE', value('DESTROY_AND_RECREATE'))
	if not destroy:
		log("INFO: DESTROY_AND_RECREATE not set or false. Existing realm preserved. "
			"Set -e DESTROY_AND_RECREATE=true to recreate (careful, destructive!).")
	debug = parse_bool('DEBUG_MODE', value('DEBUG_MODE'))

	realm = value('REALM_NAME', 'EXAMPLE.COM').upper()

	master_pass = value('MASTER_PASS', 'mastertemp')

	base_dn = value('BASE_DN', 'dc=example,dc=com')

	def derived_dn(name, default, hint):
		r = file_env(name, None, environ)
		if r.value:
			return r.value
		warn(f"{name} not set. Using default '{default}'. {hint}")
		return default

	def password(name):
		r = file_env(name, random_password, environ)
		if r.source == 'generated':
			warn(f"{name} not set. Generated random: {r.value}. "
				f"Set -e {name}=strongpass or use {name}_FILE.")
		return r.value

	kdc_dn = derived_dn('KDC_DN', f"uid=krbkdc,ou=system,{base_dn}",
		"Customize with -e KDC_DN=your,full,dn "
		"(e.g., uid=krbkdc,ou=people,dc=mydomain,dc=com for LLDAP compatibility).")
	kdc_pass = password('KDC_PASS')
	admin_dn = derived_dn('ADMIN_DN', f"uid=krbadm,ou=system,{base_dn}",
		"Customize with -e ADMIN_DN=your,full,dn.")
	admin_pass = password('ADMIN_PASS')
	container_dn = derived_dn('CONTAINER_DN', f"cn=kerberos,{base_dn}",
		"Customize with -e CONTAINER_DN=your,container,dn "
		"(e.g., ou=kerberos,dc=mydomain,dc=com).")
	dm_dn = derived_dn('DM_DN', 'cn=Directory Manager',
		"Customize with -e DM_DN=your,directory,manager,dn "
		"(e.g., uid=admin,ou=people,dc=mydomain,dc=com for LLDAP).")
	dm_pass = password('DM_PASS')

	ldap_host = value('LDAP_HOST')
	endpoint = None
	if ldap_host:
		try:
			endpoint = parse_endpoint(ldap_host, value('LDAP_SCHEME'),
						value('LDAP_PORT'))
		except KdcConfigError as e:
			warn(f"Invalid LDAP endpoint: {e}")

	use_ldap = value('USE_LDAP')
	if use_ldap is not None:
		use_ldap = parse_bool('USE_LDAP', use_ldap, default = None)

	lldap_ui_port = _positive_int('LLDAP_UI_PORT', value('LLDAP_UI_PORT'), 17170)
	probe_attempts = _positive_int('LDAP_PROBE_ATTEMPTS',
				value('LDAP_PROBE_ATTEMPTS'), 5)
	shutdown_timeout = _positive_int('SHUTDOWN_TIMEOUT',
				value('SHUTDOWN_TIMEOUT'), 30)

	return RealmConfig(
		realm = realm,
		master_pass = master_pass,
		base_dn = base_dn,
		kdc_dn = kdc_dn,
		kdc_pass = kdc_pass,
		admin_dn = admin_dn,
		admin_pass = admin_pass,
		container_dn = container_dn,
		dm_dn = dm_dn,
		dm_pass = dm_pass,
		ldap_host = ldap_host,
		ldap = endpoint,
		use_ldap = use_ldap,
		lldap_ui_port = lldap_ui_port,
		destroy_and_recreate = destroy,
		debug_mode = debug,
		probe_attempts = probe_attempts,
		shutdown_timeout = shutdown_timeout,
		paths = load_paths(environ))

# The environment the daemons get: ours, minus every configuration variable
# (and its _FILE companion), plus pointers to the rendered config files.
def daemon_env(paths, environ = None):
	if environ is None:
		environ = os.environ
	scrub = set(CONFIG_VARS)
	scrub.update(f"{v}_FILE" for v in CONFIG_VARS)
	newenv = { k: v for k, v in environ.items() if k not in scrub }
	newenv['KRB5_CONFIG'] = paths.krb5_conf
	newenv['KRB5_KDC_PROFILE'] = paths.kdc_conf
	return newenv
