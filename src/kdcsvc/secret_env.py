import os
import base64
import secrets

from kdcsvc.common import hlog, log, warn, env_get_or_none

# Values that appear in every quick-start and example on the internet. Using
# one of them for a realm, a base DN or a password is worth being loud about,
# whichever source it came from.
PUBLISHED_DEFAULTS = {
	'REALM_NAME': 'EXAMPLE.COM',
	'BASE_DN': 'dc=example,dc=com',
	'MASTER_PASS': 'mastertemp',
}

class Resolved(object):
	"""A configuration value along with where it came from.

	'source' is one of 'env', 'file', 'default' or 'generated'.
	"""
	__slots__ = ('name', 'value', 'source')

	def __init__(self, name, value, source):
		self.name = name
		self.value = value
		self.source = source

	def __repr__(self):
		return f"Resolved({self.name}, source={self.source})"

def random_password(nbytes = 12):
	# Same shape as 'openssl rand -base64 12'
	return base64.b64encode(secrets.token_bytes(nbytes)).decode('ascii')

# The trimmed contents of a secret file, or None (with a warning) if there's
# nothing usable in it, in which case the caller falls back to the default.
def read_secret_file(name, file_path):
	try:
		with open(file_path, 'r', encoding = 'utf-8') as f:
			contents = f.read().strip()
	except (OSError, UnicodeDecodeError) as e:
		warn(f"Secret file \"{file_path}\" could not be read ({e}). "
			f"Falling back to default for {name}.")
		return None
	if not contents:
		warn(f"Secret file \"{file_path}\" is empty. Falling back to default for {name}.")
		return None
	log(f"** Using {name} from secret file")
	return Resolved(name, contents, 'file')

# usage: file_env(VAR, [default])
#
# Resolve VAR from the environment, or from the file named by VAR_FILE, or
# from 'default'. If 'default' is callable it is only called when nothing
# else supplied a value (that's how random passwords get generated lazily).
# The environment is passed in (rather than always read from os.environ) so
# that each field is resolved exactly once, from one snapshot, and so tests
# don't need to mutate the process environment.
def file_env(name, default = None, environ = None):
	if environ is None:
		environ = os.environ
	file_var = f"{name}_FILE"
	val = env_get_or_none(name, environ)
	file_path = env_get_or_none(file_var, environ)

	if val and file_path:
		warn(f"Both {name} and {file_var} are set (exclusive). Using {name} value.")

	res = None
	if val:
		log(f"** Using {name} from ENV")
		res = Resolved(name, val, 'env')
	elif file_path:
		if not os.path.isfile(file_path):
			warn(f"Secret file \"{file_path}\" not found. Falling back to default for {name}.")
		else:
			res = read_secret_file(name, file_path)

	if res is None:
		if callable(default):
			res = Resolved(name, default(), 'generated')
		else:
			res = Resolved(name, default, 'default')
		hlog(2, f"** Using {name} {res.source} value")

	published = PUBLISHED_DEFAULTS.get(name)
	if published is not None and res.value == published:
		warn(f"{name} is the widely-published default '{published}'. "
			f"Set -e {name}=... or {file_var} before using this realm for anything real.")
	return res
