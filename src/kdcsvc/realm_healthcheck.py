import os
import sys
import time
import argparse

from kdcsvc import common as h
from kdcsvc.config import load_paths
from kdcsvc.launcher import daemon_process

FAILURE_MESSAGE = ("Error: krb5kdc and/or kadmind service are no longer "
		"running. Healthcheck failed.")

def check(paths, lookup = daemon_process):
	kdc = lookup('krb5kdc', paths.kdc_pid)
	kadmind = lookup('kadmind', paths.kadmind_pid)
	h.hlog(2, f"krb5kdc: {kdc}")
	h.hlog(2, f"kadmind: {kadmind}")
	return bool(kdc) and bool(kadmind)

def healthcheck(paths, retries = 0, pause = 1, lookup = daemon_process,
		sleep = time.sleep):
	h.hlog(2, f"Running: realm healthcheck ({paths.kdc_pid}, {paths.kadmind_pid})")
	while True:
		if check(paths, lookup):
			return 0
		if retries <= 0:
			print(FAILURE_MESSAGE)
			return 1
		h.hlog(1, f"Healthcheck failed, {retries} retries left")
		retries = retries - 1
		if pause > 0:
			h.hlog(2, f"Pausing for {pause} seconds")
			sleep(pause)

def add_arguments(parser):
	parser.add_argument("-R", "--retries", type = int, default = 0,
			help = "for healthcheck, max # of retries")
	parser.add_argument("-P", "--pause", type = int, default = 1,
			help = "for healthcheck, pause (seconds) between retries")
	parser.add_argument("-v", "--verbose", default = 0, action = "count",
			help = "increase output verbosity")
	parser.add_argument("-V", "--less-verbose", default = 0, action = "count",
			help = "decrease output verbosity")

def apply_verbosity(args):
	verbosity = h.current_loglevel + args.verbose - args.less_verbose
	h.set_loglevel(verbosity)
	os.environ['VERBOSE'] = f"{verbosity}"

def main(argv = None):
	parser = argparse.ArgumentParser(
		description = "Check that krb5kdc and kadmind are running")
	add_arguments(parser)
	args = parser.parse_args(argv)
	apply_verbosity(args)
	sys.exit(healthcheck(load_paths(), args.retries, args.pause))

if __name__ == '__main__':
	main()
