import os

import pytest

from kdcsvc.backend import select_backend
from kdcsvc.config import load_config
from kdcsvc.render import (dumps, quoted, render, write_configs, kdc_conf,
			KdcRenderError)

def test_dumps():
	doc = [
		( 'libdefaults', [ ( 'default_realm', 'HOME.LAN' ) ] ),
		( 'realms', [ ( 'HOME.LAN', [ ( 'kdc', 'localhost' ) ] ) ] ),
		( 'dbdefaults', [] ),
	]
	assert dumps(doc) == (
		"[libdefaults]\n"
		"    default_realm = HOME.LAN\n"
		"[realms]\n"
		"    HOME.LAN = {\n"
		"        kdc = localhost\n"
		"    }\n"
		"[dbdefaults]\n")

def test_quoted():
	assert quoted('cn=a,dc=b') == '"cn=a,dc=b"'
	assert quoted('cn=a "b"') == '"cn=a \\"b\\""'

def test_local_kdc_conf_has_no_directory(environ):
	config = load_config(environ)
	krb5_text, kdc_text = render(select_backend(False).finalize(), config)
	assert 'database_module' not in kdc_text
	assert 'kldap' not in kdc_text
	assert 'ldap_servers' not in kdc_text
	assert f"acl_file = {config.paths.acl}" in kdc_text
	assert f"admin_keytab = FILE:{config.paths.keytab}" in kdc_text
	assert "kdc_ports = 750,88" in kdc_text
	assert "default_realm = HOME.LAN" in krb5_text
	assert ".home.lan = HOME.LAN" in krb5_text
	assert "home.lan = HOME.LAN" in krb5_text

def test_ldap_kdc_conf(ldap_environ):
	config = load_config(ldap_environ)
	_, kdc_text = render(select_backend(True).finalize(), config)
	assert "        database_module = contact_ldap\n" in kdc_text
	assert "        db_library = kldap\n" in kdc_text
	assert ('        ldap_kdc_dn = "uid=krbkdc,ou=system,dc=home,dc=lan"\n'
		in kdc_text)
	assert ('        ldap_kadmind_dn = "uid=krbadm,ou=system,dc=home,dc=lan"\n'
		in kdc_text)
	assert ('        ldap_kerberos_container_dn = "cn=kerberos,dc=home,dc=lan"\n'
		in kdc_text)
	assert (f"        ldap_service_password_file = {config.paths.ldap_stash}\n"
		in kdc_text)
	assert "        ldap_servers = ldaps://ldaphost:636\n" in kdc_text

def test_provisional_decision_cant_be_rendered(ldap_environ):
	config = load_config(ldap_environ)
	with pytest.raises(KdcRenderError):
		kdc_conf(select_backend(True), config)

def test_no_secrets_in_rendered_files(ldap_environ):
	config = load_config(ldap_environ)
	krb5_text, kdc_text = render(select_backend(True).finalize(), config)
	for secret in ( 'master-secret', 'kdc-secret', 'admin-secret', 'dm-secret' ):
		assert secret not in krb5_text
		assert secret not in kdc_text

def test_write_configs(environ):
	config = load_config(environ)
	krb5_text, kdc_text = write_configs(select_backend(False).finalize(), config)
	with open(config.paths.krb5_conf) as f:
		assert f.read() == krb5_text
	with open(config.paths.kdc_conf) as f:
		assert f.read() == kdc_text
	assert os.path.isdir(config.paths.log_dir)
