import subprocess

from kdcsvc.common import log, warn, run_command

# ldapadd's exit status for "Already exists"
LDAP_ALREADY_EXISTS = 68

class DirectoryOps(object):
	"""Directory operations needed to host a realm in LDAP.

	Each method shells out to the openldap-clients / kdb5_ldap_util tooling,
	binding as the directory manager, and reports success as a bool. Nothing
	here raises on a failed operation: a False result is the provisioner's
	cue to fall back to the local database.
	"""

	def __init__(self, endpoint, bind_dn, bind_pw, runner = subprocess.run):
		self.endpoint = endpoint
		self.bind_dn = bind_dn
		self.bind_pw = bind_pw
		self.runner = runner

	def _run(self, args, input = None, secrets = ()):
		return run_command(args, input = input,
				secrets = ( self.bind_pw, ) + tuple(secrets),
				runner = self.runner)

	def _bind_args(self):
		return [ '-H', self.endpoint.url, '-x',
			'-D', self.bind_dn, '-w', self.bind_pw ]

	# kdb5_ldap_util binds the same way, minus the "-x" (simple auth is
	# implied by -D/-w).
	def _util_bind_args(self):
		return [ '-H', self.endpoint.url,
			'-D', self.bind_dn, '-w', self.bind_pw ]

	def add_person(self, dn, description):
		log(f"  - Adding user {description} at {dn}")
		ldif = (f"dn: {dn}\n"
			"objectClass: person\n"
			"objectClass: top\n"
			f"sn: {description}\n")
		c = self._run([ '/usr/bin/ldapadd' ] + self._bind_args(),
				input = ldif)
		if c.returncode == LDAP_ALREADY_EXISTS:
			log(f"  - {dn} already exists")
			return True
		if c.returncode != 0:
			warn(f"Failed adding user {description} at {dn} (status {c.returncode}). "
				"LDAP integration may not work. Check LDAP server logs and schema.")
			return False
		return True

	def change_password(self, dn, password):
		c = self._run([ '/usr/bin/ldappasswd' ] + self._bind_args() +
				[ '-s', password, dn ], secrets = ( password, ))
		if c.returncode != 0:
			warn(f"Failed changing password for {dn} (status {c.returncode}). "
				"Check LDAP auth.")
			return False
		return True

	# Write the service account's password into the stash file that the kldap
	# database module reads at startup. kdb5_ldap_util prompts twice.
	def stash_password(self, dn, password, path):
		c = self._run([ '/usr/sbin/kdb5_ldap_util', 'stashsrvpw',
				'-f', path, dn ],
				input = f"{password}\n{password}\n",
				secrets = ( password, ))
		if c.returncode != 0:
			warn(f"Failed to stash password for {dn} in {path}. "
				"LDAP auth may fail - check permissions.")
			return False
		return True

	def destroy_realm(self, realm):
		c = self._run([ '/usr/sbin/kdb5_ldap_util' ] + self._util_bind_args() +
				[ 'destroy', '-f', '-r', realm ])
		if c.returncode != 0:
			warn(f"Destroy of realm {realm} failed (status {c.returncode}) - continuing.")
			return False
		return True

	def create_realm(self, realm, subtree, master_pass):
		c = self._run([ '/usr/sbin/kdb5_ldap_util' ] + self._util_bind_args() +
				[ 'create', '-r', realm, '-subtrees', subtree,
				'-s', '-P', master_pass ],
				secrets = ( master_pass, ))
		if c.returncode != 0:
			warn(f"Kerberos LDAP initialization failed (status {c.returncode}).")
			return False
		return True

	def allow_modify(self, target_dn, nickname, user_dn):
		ldif = (f"dn: {target_dn}\n"
			"changetype: modify\n"
			"add: aci\n"
			f"aci: (target=\"ldap:///{target_dn}\")(targetattr=*)\n"
			f"     (version 3.0; acl \"{nickname}\"; allow (all)\n"
			f"     userdn = \"ldap:///{user_dn}\";)\n")
		c = self._run([ '/usr/bin/ldapmodify' ] + self._bind_args(),
				input = ldif)
		if c.returncode != 0:
			warn(f"Failed to modify directory permissions for {target_dn} "
				f"(status {c.returncode}). Kerberos may not have write access - "
				"manual ACI setup needed.")
			return False
		return True

	# Anonymous base-level read of the root DSE; any answer at all means the
	# server is up and speaking LDAP.
	def search_root_dse(self):
		c = self._run([ '/usr/bin/ldapsearch', '-H', self.endpoint.url,
				'-x', '-b', '', '-LLL', '-s', 'base', 'vendorVersion' ])
		return c.returncode == 0
