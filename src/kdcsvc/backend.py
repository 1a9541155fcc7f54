from collections import namedtuple

from kdcsvc.common import log, warn

LOCAL = 'local'
LDAP = 'ldap'

class BackendDecision(namedtuple('BackendDecision',
				[ 'backend', 'reason', 'final' ])):
	"""Which principal database backs the realm, and why.

	Decisions are values: 'downgrade()' and 'finalize()' return new ones.
	There is no way to go from LOCAL to LDAP, so once a run has
	fallen back to the local database nothing later in it can re-enable
	LDAP. A decision only becomes 'final' once provisioning and the
	reachability probe have had their say, and only final decisions can be
	rendered into kdc.conf.
	"""
	__slots__ = ()

	@property
	def use_ldap(self):
		return self.backend == LDAP

	def downgrade(self, reason):
		if self.final:
			raise ValueError("a final backend decision can't change")
		if self.backend == LOCAL:
			return self
		warn(f"{reason}. Disabling LDAP and falling back to the local database.")
		return BackendDecision(LOCAL, reason, False)

	def finalize(self):
		if self.final:
			return self
		log(f"Backend: {self.backend} ({self.reason})")
		return BackendDecision(self.backend, self.reason, True)

# host_set: LDAP_HOST was given at all.
# force_ldap: USE_LDAP, ie. None (not specified), True or False.
# endpoint_valid: LDAP_HOST (with LDAP_SCHEME/LDAP_PORT) parsed.
def select_backend(host_set, force_ldap = None, endpoint_valid = True):
	if force_ldap is False:
		log("USE_LDAP=false. Using local Kerberos database.")
		return BackendDecision(LOCAL, "LDAP explicitly disabled", False)
	if not host_set:
		if force_ldap:
			warn("USE_LDAP=true but LDAP_HOST not set. Using local Kerberos database.")
			return BackendDecision(LOCAL,
				"LDAP requested without LDAP_HOST", False)
		warn("LDAP_HOST not set. Disabling LDAP integration and using local "
			"Kerberos database. To enable LDAP (e.g., for LLDAP or Keycloak), "
			"run with -e LDAP_HOST=your-ldap-host (e.g., ldap://lldap:3890).")
		return BackendDecision(LOCAL, "LDAP_HOST not set", False)
	if not endpoint_valid:
		warn("LDAP endpoint is invalid. Using local Kerberos database.")
		return BackendDecision(LOCAL, "LDAP endpoint invalid", False)
	return BackendDecision(LDAP, "LDAP_HOST set", False)

def select_for(config):
	return select_backend(bool(config.ldap_host), config.use_ldap,
			config.ldap is not None)
