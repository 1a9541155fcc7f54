import time

from kdcsvc.common import hlog, log

# Check the directory answers before committing the daemons to it. The pause
# after a failed attempt grows with the attempt index (0, 1, 2, ... units).
def probe(directory, max_attempts = 5, pause = 1, sleep = time.sleep):
	for attempt in range(max_attempts):
		if directory.search_root_dse():
			hlog(2, f"LDAP server answered (attempt {attempt + 1})")
			return True
		hlog(1, f"LDAP server not reachable (attempt {attempt + 1} of {max_attempts})")
		if attempt * pause > 0:
			hlog(2, f"Pausing for {attempt * pause} seconds")
		sleep(attempt * pause)
	return False

def probe_and_settle(decision, directory, max_attempts = 5, pause = 1,
			sleep = time.sleep):
	"""Return 'decision', downgraded to LOCAL if it relies on a directory
	that doesn't answer. A LOCAL decision is returned as-is, without
	probing."""
	if not decision.use_ldap:
		return decision
	log(f"Checking if LDAP server is reachable at {directory.endpoint.url}...")
	if probe(directory, max_attempts, pause, sleep):
		return decision
	return decision.downgrade(
		f"Failed connecting to {directory.endpoint.url} after {max_attempts} attempts")
