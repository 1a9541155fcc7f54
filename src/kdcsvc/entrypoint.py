import os
import sys
import argparse
import subprocess

from kdcsvc import common as h
from kdcsvc.common import log, warn, run_command
from kdcsvc.config import load_config, load_paths, daemon_env, debug_requested
from kdcsvc.backend import select_for
from kdcsvc.ldap_ops import DirectoryOps
from kdcsvc.do_kadmin import LocalKdcOps
from kdcsvc.provision import Provisioner
from kdcsvc.probe import probe_and_settle
from kdcsvc.render import write_configs, KdcRenderError
from kdcsvc.launcher import Supervisor
from kdcsvc import realm_healthcheck

# Container entrypoint. With no argument: bootstrap the realm and supervise
# kadmind/krb5kdc until told to stop. With 'healthcheck': check both daemons
# are alive and exit 0/1.
#
# The bootstrap runs strictly in order, each step seeing only the previous
# step's result:
#   resolve config -> select backend -> provision -> probe LDAP
#   -> (local fallback) -> finalize -> render configs
# so that the config files always describe the backend that is actually in
# use, not the one that was hoped for.

def update_ca_trust(paths, runner = subprocess.run):
	anchors = paths.ca_anchors
	if not os.path.isdir(anchors) or not os.listdir(anchors):
		return
	log("SSL certificate trust found. Running update-ca-trust")
	c = run_command([ '/usr/sbin/update-ca-trust', 'extract' ], runner = runner)
	if c.returncode != 0:
		warn(f"update-ca-trust failed (status {c.returncode}); ldaps "
			"connections to a private CA may not verify.")

def bootstrap(config, directory = None, kdc = None, sleep = None):
	"""Bring the volume and config files in line with 'config' and return
	the final backend decision."""
	decision = select_for(config)
	if directory is None and config.ldap:
		directory = DirectoryOps(config.ldap, config.dm_dn, config.dm_pass)
	if kdc is None:
		kdc = LocalKdcOps(config.realm)

	provisioner = Provisioner(config, directory, kdc)
	decision, error = provisioner.provision(decision)

	kwargs = {}
	if sleep:
		kwargs['sleep'] = sleep
	decision = probe_and_settle(decision, directory,
				max_attempts = config.probe_attempts, **kwargs)
	error = provisioner.ensure_local(decision) or error
	if error:
		h.err(f"{error}; the KDC will probably fail to start.")

	decision = decision.finalize()
	write_configs(decision, config)
	return decision

def main(argv = None):
	parser = argparse.ArgumentParser(
		description = "Kerberos KDC/KADMIN container entrypoint")
	parser.add_argument("command", nargs = '?', default = None,
			type = str.lower, choices = [ 'healthcheck' ],
			help = "'healthcheck' to check the daemons and exit")
	realm_healthcheck.add_arguments(parser)
	args = parser.parse_args(argv)

	realm_healthcheck.apply_verbosity(args)

	if args.command == 'healthcheck':
		sys.exit(realm_healthcheck.healthcheck(load_paths(),
				args.retries, args.pause))

	log("Starting Kerberos KDC/KADMIN container")
	# Script trace mode, before anything else is resolved
	if debug_requested() and h.current_loglevel < 2:
		h.set_loglevel(2)
	config = load_config()
	update_ca_trust(config.paths)
	if config.ldap:
		log(f"LDAP endpoint: {config.ldap.url} "
			f"(LLDAP web UI expected on port {config.lldap_ui_port})")
	try:
		decision = bootstrap(config)
	except (OSError, KdcRenderError) as e:
		h.bail(f"Could not prepare the realm: {e}")
	log(f"Using {decision.backend} backend for realm {config.realm}")

	supervisor = Supervisor(config.paths, env = daemon_env(config.paths),
			shutdown_timeout = config.shutdown_timeout)
	sys.exit(supervisor.run())

if __name__ == '__main__':
	main()
