import subprocess

from kdcsvc.common import log, err, warn, run_command, touch

class LocalKdcOps(object):
	"""The local Kerberos installation's database and admin commands.

	Principals are automatically suffixed with the realm. As with
	DirectoryOps, failures come back as False (with the reason logged) and
	it's up to the caller to decide how much they matter.
	"""

	def __init__(self, realm, runner = subprocess.run):
		self.realm = realm
		self.runner = runner

	def _principal(self, name):
		if '@' in name:
			return name
		return f"{name}@{self.realm}"

	# kadmin.local splits its -q request like a shell line: a double-quoted
	# argument may hold spaces, and a doubled quote inside it stands for one
	# literal quote. Line breaks end the request, so those can't be passed.
	def _password_query(self, op, princ, password):
		if "\n" in password or "\r" in password or "\0" in password:
			err(f"The password for {princ} contains a line break or NUL, "
				"which kadmin.local can't be given.")
			return None, ()
		quoted = '"' + password.replace('"', '""') + '"'
		return f"{op} -pw {quoted} {princ}", ( quoted, password )

	def _kadmin(self, query, secrets = ()):
		args = [ '/usr/sbin/kadmin.local', '-r', self.realm, '-q', query ]
		return run_command(args, secrets = secrets, runner = self.runner)

	def create_database(self, master_pass):
		c = run_command([ '/usr/sbin/kdb5_util', 'create', '-s',
				'-r', self.realm, '-P', master_pass ],
				secrets = ( master_pass, ), runner = self.runner)
		if c.returncode != 0:
			err(f"Local Kerberos initialization failed (status {c.returncode}). "
				"Services may not start - check logs.")
			return False
		return True

	# kadmin.local reports query failures as "<op>: <reason> while <doing>" on
	# stderr, and (depending on the version) may still exit 0.
	def _kadmin_ok(self, c):
		if c.returncode != 0:
			return False
		for line in (c.stderr or '').splitlines():
			if ' while ' in line:
				return False
		return True

	def add_principal(self, name, password):
		princ = self._principal(name)
		query, secrets = self._password_query('addprinc', princ, password)
		if query is None:
			return False
		c = self._kadmin(query, secrets = secrets)
		if not self._kadmin_ok(c):
			hint = (c.stderr or '').strip().splitlines()[-1:] or [ f"status {c.returncode}" ]
			warn(f"Failed to add principal {princ}: {hint[0]}")
			return False
		log(f" - Added principal {princ}")
		return True

	def change_password(self, name, password):
		princ = self._principal(name)
		query, secrets = self._password_query('cpw', princ, password)
		if query is None:
			return False
		c = self._kadmin(query, secrets = secrets)
		if not self._kadmin_ok(c):
			warn(f"Failed to change password of {princ}")
			return False
		log(f" - Changed password of {princ}")
		return True

	# Export keys without re-randomizing them (only kadmin.local can do that),
	# otherwise the password just set would stop working.
	def export_keytab(self, keytab, names):
		princs = [ self._principal(n) for n in names ]
		c = self._kadmin(f"ktadd -k {keytab} -norandkey {' '.join(princs)}")
		if not self._kadmin_ok(c):
			warn(f"Failed to export {princs} to {keytab}")
			return False
		log(f" - Exported {princs} to {keytab}")
		return True

	def write_acl(self, path, pattern = '*/admin', perms = '*'):
		touch(path, content = f"{self._principal(pattern)} {perms}\n")
		log(f" - Wrote {path}")
		return True
