# vim: set expandtab shiftwidth=4 softtabstop=4:

import os
import signal
import subprocess
import time

import psutil

from kdcsvc.common import log, hlog, warn, err

NOT_STARTED = 'NotStarted'
RUNNING = 'Running'
SHUTTING_DOWN = 'ShuttingDown'
STOPPED = 'Stopped'

# Find the running daemon whose pid was written to 'pidfile', or None. A pid
# that has been recycled by some other program, or that belongs to a zombie,
# doesn't count.
def daemon_process(name, pidfile):
    try:
        with open(pidfile, 'r') as f:
            pid = int(f.read().strip())
    except (OSError, ValueError):
        return None
    try:
        p = psutil.Process(pid)
        if p.status() == psutil.STATUS_ZOMBIE:
            return None
        if p.name() != name:
            hlog(2, f"pid {pid} from {pidfile} is '{p.name()}', not '{name}'")
            return None
    except psutil.Error:
        return None
    return p

# When we're PID 1 in the container, the daemons (which detach from us) get
# re-parented to us, so reap whatever has exited.
def reap_children():
    while True:
        try:
            pid, _ = os.waitpid(-1, os.WNOHANG)
        except ChildProcessError:
            return
        if pid == 0:
            return

class Supervisor(object):
    """Start kadmind and krb5kdc, follow the KDC log, and on SIGTERM/SIGINT
    stop them in order.

    State goes NotStarted -> Running -> ShuttingDown -> Stopped. A signal
    only stops the log follower; it's the follower exiting that moves us on
    to shutting down, and the daemons are only told to stop from there.
    """

    def __init__(self, paths, env = None, shutdown_timeout = 30,
                 poll_interval = 1, *, spawn = subprocess.Popen,
                 run = subprocess.run, sleep = time.sleep,
                 clock = time.monotonic, lookup = daemon_process):
        self.paths = paths
        self.env = env
        self.shutdown_timeout = shutdown_timeout
        self.poll_interval = poll_interval
        self.spawn = spawn
        self.run_cmd = run
        self.sleep = sleep
        self.clock = clock
        self.lookup = lookup
        self.state = NOT_STARTED
        self.follower = None
        self.signalled = None
        # Start order. Shutdown goes through this list backwards: krb5kdc
        # has the busy clients and should turn them away first, while
        # kadmind gets a little longer to finish whatever admin operation
        # is in flight.
        self.daemons = [
            {
                'name': 'kadmind',
                'exec': [ '/usr/sbin/kadmind', '-P', paths.kadmind_pid ],
                'pidfile': paths.kadmind_pid,
                'logfile': paths.kadmind_log,
            },
            {
                'name': 'krb5kdc',
                'exec': [ '/usr/sbin/krb5kdc', '-P', paths.kdc_pid ],
                'pidfile': paths.kdc_pid,
                'logfile': paths.kdc_log,
            },
        ]

    def start(self):
        if self.state != NOT_STARTED:
            raise RuntimeError(f"can't start from state {self.state}")
        for d in self.daemons:
            log(f"Starting {d['name']}...")
            try:
                c = self.run_cmd(d['exec'], env = self.env)
                res = c.returncode
            except OSError as e:
                hlog(1, f"failed to run {d['exec'][0]}: {e}")
                res = 127
            # Carry on regardless, the healthcheck is what reports this.
            if res != 0:
                err(f"{d['name']} failed to start (status {res})")
        # Show kdc logging as output. 'tail' exits when we terminate it.
        try:
            self.follower = self.spawn([ '/usr/bin/tail', '-F', self.paths.kdc_log ])
        except OSError as e:
            err(f"Can't follow {self.paths.kdc_log}: {e}")
            self.follower = None
        self.state = RUNNING
        self.install_signals()

    def install_signals(self):
        signal.signal(signal.SIGTERM, self.on_signal)
        signal.signal(signal.SIGINT, self.on_signal)

    def on_signal(self, signum, frame):
        self.signalled = signum
        hlog(1, f"Received signal {signum}, stopping log output")
        if self.follower and self.follower.poll() is None:
            self.follower.terminate()

    def wait(self):
        if self.state != RUNNING:
            raise RuntimeError(f"can't wait in state {self.state}")
        if self.follower is None:
            return
        res = self.follower.wait()
        hlog(2, f"log follower exited with code {res}")

    def alive(self):
        return [ d for d in self.daemons
                    if self.lookup(d['name'], d['pidfile']) ]

    def _signal_all(self, sig):
        for d in reversed(self.daemons):
            p = self.lookup(d['name'], d['pidfile'])
            if not p:
                continue
            try:
                p.send_signal(sig)
            except psutil.Error as e:
                hlog(2, f"signalling {d['name']}: {e}")

    def shutdown(self):
        self.state = SHUTTING_DOWN
        for d in reversed(self.daemons):
            p = self.lookup(d['name'], d['pidfile'])
            if not p:
                log(f"{d['name']} isn't running")
                continue
            log(f"Shutting down {d['name']}...")
            try:
                p.terminate()
            except psutil.Error as e:
                hlog(2, f"terminating {d['name']}: {e}")

        # Wait for clean shutdown, for up to 'shutdown_timeout' seconds, then
        # stop asking nicely.
        deadline = self.clock() + self.shutdown_timeout
        killed = False
        while True:
            reap_children()
            remaining = self.alive()
            if not remaining:
                break
            if not killed and self.clock() >= deadline:
                names = [ d['name'] for d in remaining ]
                warn(f"{names} still running after {self.shutdown_timeout} "
                     "seconds, sending SIGKILL")
                self._signal_all(signal.SIGKILL)
                killed = True
            self.sleep(self.poll_interval)
        self.state = STOPPED
        log("Kerberos services stopped")
        return 0

    # Without a log follower there is nothing to wait on, so the daemons are
    # stopped straight away and the exit status says something went wrong.
    def run(self):
        self.start()
        self.wait()
        res = self.shutdown()
        if self.follower is None:
            return 1
        return res
