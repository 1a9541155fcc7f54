import os

from kdcsvc.common import log, touch
from kdcsvc.backend import LDAP

# krb5.conf and kdc.conf are both "profile" files: named [sections] holding
# "tag = value" relations, where a value can itself be a { } group of
# relations. Rather than templating text, the two files are built as
# documents of that shape and serialized by dumps(), so there is exactly one
# place that knows the syntax.
#
# A document is a list of (section, relations) pairs; 'relations' is a list
# of (tag, value) pairs, where value is a str or a nested relations list.

INDENT = '    '

class KdcRenderError(Exception):
	pass

def dumps(document):
	lines = []
	def relations(rels, depth):
		pad = INDENT * depth
		for tag, value in rels:
			if isinstance(value, list):
				lines.append(f"{pad}{tag} = {{")
				relations(value, depth + 1)
				lines.append(f"{pad}}}")
			else:
				lines.append(f"{pad}{tag} = {value}")
	for section, rels in document:
		lines.append(f"[{section}]")
		relations(rels, 1)
	return '\n'.join(lines) + '\n'

def quoted(s):
	return '"' + s.replace('\\', '\\\\').replace('"', '\\"') + '"'

LDAP_MODULE = 'contact_ldap'

def krb5_conf(config):
	realm = config.realm
	paths = config.paths
	return [
		( 'libdefaults', [
			( 'dns_canonicalize_hostname', 'false' ),
			( 'rdns', 'false' ),
			( 'default_realm', realm ),
			( 'default_ccache_name', 'FILE:/tmp/krb5cc_%{uid}' ),
		] ),
		( 'realms', [
			( realm, [
				( 'kdc', 'localhost' ),
				( 'admin_server', 'localhost' ),
			] ),
		] ),
		( 'domain_realm', [
			( f".{realm.lower()}", realm ),
			( realm.lower(), realm ),
		] ),
		( 'logging', [
			( 'kdc', f"FILE:{paths.kdc_log}" ),
			( 'admin_server', f"FILE:{paths.kadmind_log}" ),
			( 'default', f"FILE:{paths.libs_log}" ),
		] ),
	]

def kdc_conf(decision, config):
	if not decision.final:
		raise KdcRenderError("kdc.conf can only be rendered from a final backend decision")
	paths = config.paths
	realm_rels = []
	dbmodules = []
	if decision.backend == LDAP:
		realm_rels.append(( 'database_module', LDAP_MODULE ))
		dbmodules.append(( LDAP_MODULE, [
			( 'db_library', 'kldap' ),
			( 'ldap_kdc_dn', quoted(config.kdc_dn) ),
			( 'ldap_kadmind_dn', quoted(config.admin_dn) ),
			( 'ldap_kerberos_container_dn', quoted(config.container_dn) ),
			( 'ldap_service_password_file', paths.ldap_stash ),
			( 'ldap_servers', config.ldap.url ),
		] ))
	realm_rels += [
		( 'acl_file', paths.acl ),
		( 'admin_keytab', f"FILE:{paths.keytab}" ),
	]
	return [
		( 'kdcdefaults', [
			( 'kdc_ports', '750,88' ),
			( 'kdc_tcp_ports', '88' ),
		] ),
		( 'realms', [
			( config.realm, realm_rels ),
		] ),
		( 'dbdefaults', [] ),
		( 'dbmodules', dbmodules ),
		( 'logging', [
			( 'kdc', f"FILE:{paths.kdc_log}" ),
			( 'admin_server', f"FILE:{paths.kadmind_log}" ),
		] ),
	]

def render(decision, config):
	"""Return (krb5_conf_text, kdc_conf_text) for a final decision."""
	return dumps(krb5_conf(config)), dumps(kdc_conf(decision, config))

def write_configs(decision, config):
	krb5_text, kdc_text = render(decision, config)
	paths = config.paths
	log(f" - Generating {paths.krb5_conf}")
	touch(paths.krb5_conf, content = krb5_text)
	log(f" - Generating {paths.kdc_conf}")
	touch(paths.kdc_conf, content = kdc_text)
	os.makedirs(paths.log_dir, mode = 0o755, exist_ok = True)
	return krb5_text, kdc_text
