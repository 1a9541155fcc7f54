import os
import glob

from kdcsvc.common import hlog, log, warn, err, touch
from kdcsvc.backend import LOCAL, LDAP

NOTHING = 'none'

# One-time setup of the persistent volume, gated by a touchfile (the
# "configured" marker) in the same way launcher-managed services gate their
# 'setup' steps. The marker's content lists the backends that have a database
# on this volume ("ldap", "local" or both), so later runs know what they're
# standing on. An empty marker (as left by older images) means "unknown".
#
# Nothing in here aborts the container. LDAP failures turn into a downgraded
# backend decision, and a failed local database creation is logged as an
# error and left for the daemons (and the healthcheck) to surface.

class Provisioner(object):

	def __init__(self, config, directory, kdc):
		self.config = config
		self.paths = config.paths
		self.directory = directory
		self.kdc = kdc
		self.local_attempted = False

	def marker_backends(self):
		"""None if the volume isn't provisioned, otherwise the set of
		backends provisioned on it (empty if the marker predates that
		being recorded)."""
		if not os.path.isfile(self.paths.marker):
			return None
		with open(self.paths.marker, 'r') as f:
			return set(f.read().split())

	def record(self, backends):
		touch(self.paths.marker, content = ' '.join(sorted(backends)) + '\n')

	# The only path that ever removes the marker.
	def reset_volume(self):
		warn("DESTROY_AND_RECREATE=true. Destroying the existing realm on this "
			"volume; this happens on every start until the flag is removed.")
		victims = [ self.paths.marker, self.paths.acl, self.paths.keytab,
			self.paths.ldap_stash,
			self.paths.master_stash(self.config.realm) ]
		victims += glob.glob(f"{self.paths.principal_db}*")
		for v in victims:
			if os.path.isfile(v):
				hlog(2, f" - removing {v}")
				os.remove(v)

	def provision(self, decision):
		"""Provision the volume (at most once) and return
		(decision, error), where 'decision' may have been downgraded to
		LOCAL and 'error' describes a local database failure (or is
		None)."""
		if self.config.destroy_and_recreate:
			self.reset_volume()

		recorded = self.marker_backends()
		if recorded is not None:
			log(f"Kerberos server already configured "
				f"(backends: {' '.join(sorted(recorded)) or 'unknown'}).")
			if recorded and LDAP not in recorded and decision.use_ldap:
				decision = decision.downgrade(
					"LDAP was never provisioned on this volume")
			return decision, None

		log("Kerberos server not configured. Starting configuration.")
		provisioned = set()
		if decision.use_ldap:
			decision = self.provision_ldap(decision)
			if decision.use_ldap:
				provisioned.add(LDAP)
		error = None
		if not decision.use_ldap:
			error = self.provision_local()
			if not error:
				provisioned.add(LOCAL)

		# Mark as configured whatever happened. If nothing worked the marker
		# says "none", which later runs read as "no local database yet".
		self.record(provisioned or { NOTHING })
		return decision, error

	def provision_ldap(self, decision):
		c = self.config
		d = self.directory
		log("Configuring with LDAP backend.")

		identities = [
			( c.kdc_dn, c.kdc_pass, "Kerberos KDC Connection" ),
			( c.admin_dn, c.admin_pass, "Kerberos Administration Connection" ),
		]
		for dn, password, description in identities:
			if not d.add_person(dn, description):
				return decision.downgrade(f"Failed to create {dn}")
			if not d.change_password(dn, password):
				return decision.downgrade(f"Failed to set the password of {dn}")

		log(f" - Generating KRBADM/KDC Passwords to {self.paths.ldap_stash}")
		for dn, password, _ in identities:
			if not d.stash_password(dn, password, self.paths.ldap_stash):
				return decision.downgrade(f"Failed to stash the password of {dn}")

		if c.destroy_and_recreate:
			log(" - Destroying existing realm from Directory server")
			d.destroy_realm(c.realm)

		log(" - Initialize Directory server for Kerberos operation")
		if not d.create_realm(c.realm, c.container_dn, c.master_pass):
			return decision.downgrade("Kerberos LDAP initialization failed")

		log(" - Give kerberos rights to modify directory")
		if not d.allow_modify(c.container_dn, 'kerberos-admin', c.admin_dn):
			warn("ACI for admin failed.")
		if not d.allow_modify(c.container_dn, 'kerberos-kdc', c.kdc_dn):
			warn("ACI for KDC failed.")

		self.kdc.write_acl(self.paths.acl)
		return decision

	def provision_local(self):
		self.local_attempted = True
		c = self.config
		log("Configuring local Kerberos database (no LDAP).")
		if not self.kdc.create_database(c.master_pass):
			return "local Kerberos database creation failed"
		admin = 'admin/admin'
		if self.kdc.add_principal(admin, c.admin_pass):
			self.kdc.export_keytab(self.paths.keytab, [ admin ])
		else:
			err(f"Could not create {admin}; the realm will have no administrator.")
		self.kdc.write_acl(self.paths.acl)
		return None

	def ensure_local(self, decision):
		"""Make sure a LOCAL decision has a local database behind it.

		This matters when the volume has only been provisioned for LDAP
		(this run or an earlier one) and the run has since fallen back to
		LOCAL. Local provisioning is attempted at most once per run, and
		not at all when the marker doesn't say what's on the volume."""
		if decision.use_ldap or self.local_attempted:
			return None
		recorded = self.marker_backends()
		if not recorded or LOCAL in recorded:
			return None
		warn("Falling back to the local database but none exists on this "
			"volume; creating one.")
		error = self.provision_local()
		if not error:
			self.record((recorded - { NOTHING }) | { LOCAL })
		return error
