import os
import sys
import subprocess

# This is rudimentary: level 0 is for stuff that will go to stderr no matter
# what, level 1 is for the normal narrative of a container start, and level 2
# is for stuff whose absence might be desirable unless someone is debugging
# (every external command line, for example).
#
# - def_loglevel is the log level to assume for callers to log()
# - current_loglevel is the maximum level to let through to stderr (anything
#   higher is dropped)
def_loglevel = 1
current_loglevel = 1

if 'VERBOSE' in os.environ:
	try:
		current_loglevel = int(os.environ['VERBOSE'])
	except ValueError:
		pass

def set_loglevel(level):
	global current_loglevel
	current_loglevel = level

def hlog(level, s):
	if level > current_loglevel:
		return
	print(s, file = sys.stderr)
	sys.stderr.flush()

def log(s):
	hlog(def_loglevel, s)

def warn(s):
	hlog(0, f"WARNING: {s}")

def err(s):
	hlog(0, f"ERROR: {s}")

def bail(s, exitcode = 1):
	hlog(0, f"FAIL: {s}")
	sys.exit(exitcode)

# Equivalent for the 'touch' command. If 'content' is given, the file is
# (re)written with it rather than just having its timestamp bumped.
def touch(p, *, makedirs = True, content = None):
	if makedirs:
		d = os.path.dirname(p)
		if d and not os.path.isdir(d):
			os.makedirs(d, mode = 0o755)
	if content is None:
		with open(p, 'a'):
			os.utime(p, None)
	else:
		with open(p, 'w') as f:
			f.write(content)

def env_get_or_none(k, environ = None):
	if environ is None:
		environ = os.environ
	if not k in environ:
		return None
	v = environ[k]
	if not isinstance(v, str):
		return None
	if len(v) == 0:
		return None
	return v

# Parse the 'true'/'false' strings used by the container's environment. None
# (unset) gives the default, anything unrecognized warns and gives 'default'.
def parse_bool(name, v, default = False):
	if v is None:
		return default
	lv = v.strip().lower()
	if lv == 'true':
		return True
	if lv == 'false':
		return False
	warn(f"{name}='{v}' is neither 'true' nor 'false', using '{str(default).lower()}'")
	return default

# Produce a printable version of a command line with the given secrets
# replaced, so that running commands can be traced without leaking passwords.
def redact(args, secrets):
	masked = []
	for a in args:
		for s in secrets:
			if s and s in a:
				a = a.replace(s, '********')
		masked.append(a)
	return masked

# Run an external command (the KDC and LDAP tooling are all CLIs), tracing it
# at level 2 with 'secrets' masked. A missing binary is reported the way a
# shell would, as exit status 127, so callers only ever look at returncode.
def run_command(args, *, input = None, secrets = (), env = None,
		runner = subprocess.run):
	hlog(2, f"running: {redact(args, secrets)}")
	try:
		c = runner(args, input = input, env = env,
				stdout = subprocess.PIPE, stderr = subprocess.PIPE,
				text = True)
	except OSError as e:
		hlog(1, f"failed to run {args[0]}: {e}")
		return subprocess.CompletedProcess(args, 127, '', str(e))
	if c.stdout:
		hlog(2, c.stdout.rstrip())
	if c.stderr:
		hlog(2, f"[stderr] {c.stderr.rstrip()}")
	if c.returncode != 0:
		hlog(2, f"FAIL, exitcode={c.returncode}")
	return c
