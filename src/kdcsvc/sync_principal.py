import sys
import base64
import binascii
import argparse

from kdcsvc.common import log, err
from kdcsvc.secret_env import file_env
from kdcsvc.do_kadmin import LocalKdcOps

# Password-change hook for the directory (LLDAP calls it with the user name
# and the new password, obfuscated as base64(password XOR ENCODE_KEY)), so
# that the user's Kerberos principal follows their directory password.
#
# Usage:
# kdcsvc-sync-principal <username> <obfuscated_pass>

def deobfuscate(obfuscated, key):
	"""Undo base64(password XOR key), with the key repeated as needed."""
	if not key:
		raise ValueError("empty key")
	keyb = key.encode('utf-8')
	xored = base64.b64decode(obfuscated, validate = True)
	plain = bytes(x ^ keyb[i % len(keyb)] for i, x in enumerate(xored))
	return plain.decode('utf-8')

def sync(username, password, kdc):
	# Add if new, change if it exists
	if kdc.add_principal(username, password):
		return True
	return kdc.change_password(username, password)

def main(argv = None, environ = None, kdc = None):
	parser = argparse.ArgumentParser(
		description = "Create or update a principal from a directory password change")
	parser.add_argument("username")
	parser.add_argument("obfuscated_pass", nargs = '?', default = '')
	args = parser.parse_args(argv)

	key = file_env('ENCODE_KEY', None, environ).value
	if not key:
		err("ENCODE_KEY missing - cannot deobfuscate")
		return 1
	if not args.obfuscated_pass:
		err("No obfuscated password")
		return 1
	try:
		password = deobfuscate(args.obfuscated_pass, key)
	except (binascii.Error, ValueError) as e:
		err(f"Could not deobfuscate the password: {e}")
		return 1

	realm = file_env('REALM_NAME', 'EXAMPLE.COM', environ).value.upper()
	if kdc is None:
		kdc = LocalKdcOps(realm)
	principal = f"{args.username}@{realm}"
	log(f"Syncing Kerberos principal {principal}")
	if not sync(principal, password, kdc):
		err(f"Failed to update principal {principal}")
		return 1
	log(f"Success: Principal {principal} updated")
	return 0

if __name__ == '__main__':
	sys.exit(main())
