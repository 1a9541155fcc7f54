import os
import signal

import psutil
import pytest

from fakes import Runner, FakeDaemon, FakeFollower

from kdcsvc.config import load_paths
from kdcsvc.launcher import (Supervisor, daemon_process, NOT_STARTED, RUNNING,
			STOPPED)

class Clock(object):
	def __init__(self):
		self.now = 0
		self.sleeps = []
	def __call__(self):
		return self.now
	def sleep(self, s):
		self.sleeps.append(s)
		self.now += s

@pytest.fixture
def rig(base_environ):
	events = []
	daemons = {
		'kadmind': FakeDaemon('kadmind', events),
		'krb5kdc': FakeDaemon('krb5kdc', events),
	}
	def lookup(name, pidfile):
		d = daemons[name]
		return d if d.alive else None
	rig = {
		'events': events,
		'daemons': daemons,
		'lookup': lookup,
		'runner': Runner(),
		'followers': [],
		'clock': Clock(),
		'paths': load_paths(base_environ),
	}
	def spawn(args):
		f = FakeFollower(args, on_wait = rig.get('on_wait'))
		rig['followers'].append(f)
		return f
	rig['spawn'] = spawn
	return rig

def supervisor(rig, **kwargs):
	return Supervisor(rig['paths'], env = { 'PATH': '/usr/bin' },
			spawn = rig['spawn'], run = rig['runner'],
			sleep = rig['clock'].sleep, clock = rig['clock'],
			lookup = rig['lookup'], **kwargs)

def test_start(rig):
	sup = supervisor(rig)
	assert sup.state == NOT_STARTED
	sup.start()
	assert sup.state == RUNNING
	assert rig['runner'].progs() == [ 'kadmind', 'krb5kdc' ]
	assert rig['runner'].calls[1]['args'] == [ '/usr/sbin/krb5kdc', '-P',
						rig['paths'].kdc_pid ]
	assert rig['runner'].calls[0]['env'] == { 'PATH': '/usr/bin' }
	assert rig['followers'][0].args == [ '/usr/bin/tail', '-F', rig['paths'].kdc_log ]
	assert signal.getsignal(signal.SIGTERM) == sup.on_signal
	assert signal.getsignal(signal.SIGINT) == sup.on_signal
	with pytest.raises(RuntimeError):
		sup.start()

def test_start_failures_are_logged_not_fatal(rig, capsys):
	rig['runner'] = Runner(results = { 'krb5kdc': ( 1, '', 'boom' ) },
				missing = [ 'kadmind' ])
	sup = supervisor(rig)
	sup.start()
	assert sup.state == RUNNING
	stderr = capsys.readouterr().err
	assert 'kadmind failed to start (status 127)' in stderr
	assert 'krb5kdc failed to start (status 1)' in stderr

def test_signal_only_stops_the_follower(rig):
	sup = supervisor(rig)
	sup.start()
	sup.on_signal(signal.SIGTERM, None)
	assert rig['followers'][0].terminated
	assert rig['events'] == []
	assert sup.state == RUNNING
	assert sup.signalled == signal.SIGTERM

def test_shutdown_order(rig):
	sup = supervisor(rig)
	sup.start()
	assert sup.shutdown() == 0
	assert sup.state == STOPPED
	assert rig['events'] == [ ( signal.SIGTERM, 'krb5kdc' ),
				( signal.SIGTERM, 'kadmind' ) ]

def test_shutdown_escalates_after_the_timeout(rig, capsys):
	rig['daemons']['kadmind'].dies_on_term = False
	sup = supervisor(rig, shutdown_timeout = 3)
	sup.start()
	sup.shutdown()
	assert rig['events'] == [ ( signal.SIGTERM, 'krb5kdc' ),
				( signal.SIGTERM, 'kadmind' ),
				( signal.SIGKILL, 'kadmind' ) ]
	assert rig['clock'].now >= 3
	assert sup.state == STOPPED
	assert 'sending SIGKILL' in capsys.readouterr().err

def test_shutdown_with_nothing_running(rig):
	for d in rig['daemons'].values():
		d.alive = False
	sup = supervisor(rig)
	sup.start()
	assert sup.shutdown() == 0
	assert rig['events'] == []
	assert rig['clock'].sleeps == []

def test_run_until_signalled(rig):
	rig['on_wait'] = lambda: sup.on_signal(signal.SIGINT, None)
	sup = supervisor(rig)
	assert sup.run() == 0
	assert sup.state == STOPPED
	assert sup.signalled == signal.SIGINT
	assert [ e[1] for e in rig['events'] ] == [ 'krb5kdc', 'kadmind' ]

def test_daemon_process_from_pidfile(tmp_path):
	pidfile = tmp_path / 'x.pid'
	assert daemon_process('krb5kdc', str(pidfile)) is None
	pidfile.write_text('not a pid\n')
	assert daemon_process('krb5kdc', str(pidfile)) is None

	me = psutil.Process()
	pidfile.write_text(f"{os.getpid()}\n")
	p = daemon_process(me.name(), str(pidfile))
	assert p is not None
	assert p.pid == os.getpid()
	# A recycled pid belongs to some other program
	assert daemon_process('krb5kdc', str(pidfile)) is None

def test_missing_log_follower_stops_the_daemons(rig, capsys):
	def spawn(args):
		raise FileNotFoundError(2, 'No such file or directory', args[0])
	rig['spawn'] = spawn
	sup = supervisor(rig)
	assert sup.run() == 1
	assert sup.state == STOPPED
	assert rig['events'] == [ ( signal.SIGTERM, 'krb5kdc' ),
				( signal.SIGTERM, 'kadmind' ) ]
	assert "Can't follow" in capsys.readouterr().err
