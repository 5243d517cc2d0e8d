"""Single-slot job supervision."""
import os
import signal
import subprocess
import threading
import time

from utils.config import logger, BASH_PATH, PAYLOAD_ROOT, ENTRY_NAME, PROMPT_TIMEOUT_SEC, STOP_GRACE_SEC
from utils.errors import PathRejected, JobStartFailed
from utils.validation import _validate_payload_path
from core.wrapper import _write_wrapper, _remove_wrapper, _wrapper_env

JOB_IDLE = "idle"
JOB_RUNNING = "running"
JOB_AWAITING_INPUT = "awaiting_input"
JOB_FINISHED = "finished"
JOB_STOPPED = "stopped"
JOB_FAILED = "failed"

_TERMINAL_STATES = (JOB_FINISHED, JOB_STOPPED, JOB_FAILED)


class _Job:
    def __init__(self, path, log_path):
        self.path = path
        self.log_path = log_path
        self.state = JOB_IDLE
        self.proc = None
        self.wrapper_path = None
        self.lock = threading.Lock()
        self.done = threading.Event()
        self.returncode = None
        self.output_cursor = 0
        self.started_at = None
        self.finish_time = None  # Set when the process exits or is stopped

    @property
    def pid(self):
        return self.proc.pid if self.proc else None

    def is_alive(self):
        # done is set by the reaper thread once wait() returns
        return self.proc is not None and not self.done.is_set()

    def set_state(self, state):
        with self.lock:
            # Terminal states stick; a late prompt line must not revive a dead job
            if self.state in _TERMINAL_STATES:
                return False
            self.state = state
            return True

    def snapshot(self):
        with self.lock:
            return {
                "path": self.path,
                "state": self.state,
                "pid": self.pid,
                "returncode": self.returncode,
                "started_at": self.started_at,
                "finish_time": self.finish_time,
            }


def _terminate(proc, grace=STOP_GRACE_SEC):
    """Signal a job's process group and wait for the job to exit.

    SIGTERM first; a job still alive after `grace` seconds (a payload that
    traps TERM, say) gets SIGKILL. Returns "stopped" when a signal was
    delivered and "already_exited" when there was nothing left to signal.
    Either way the process has exited when this returns.
    """
    if proc is None or proc.poll() is not None:
        return "already_exited"
    # Jobs run in their own session, so the group id is the wrapper's pid
    pgid = proc.pid
    try:
        os.killpg(pgid, signal.SIGTERM)
    except ProcessLookupError:
        return "already_exited"
    try:
        proc.wait(timeout=grace)
    except subprocess.TimeoutExpired:
        logger.warning(f"[Job] pid={pgid} ignored SIGTERM for {grace}s, killing")
        try:
            os.killpg(pgid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        proc.wait()
    return "stopped"


class JobSupervisor:
    """Owns the one active job slot.

    Args:
        log_path: combined stdout/stderr log, truncated at each job start
        bridge: PromptBridge whose mailbox the wrapper polls
        payload_root: directory payloads must live under
        entry_name: required payload filename
        stop_grace: seconds a stopped job gets before SIGKILL
    """

    def __init__(
        self,
        log_path,
        bridge,
        payload_root=PAYLOAD_ROOT,
        entry_name=ENTRY_NAME,
        prompt_timeout=PROMPT_TIMEOUT_SEC,
        bash_path=BASH_PATH,
        stop_grace=STOP_GRACE_SEC,
    ):
        self.log_path = log_path
        self.bridge = bridge
        self.payload_root = payload_root
        self.entry_name = entry_name
        self.prompt_timeout = prompt_timeout
        self.bash_path = bash_path
        self.stop_grace = stop_grace
        self.lock = threading.Lock()
        # Serializes start and stop end to end; self.lock only guards the slot
        self._start_lock = threading.Lock()
        self._job = None

    def active(self):
        with self.lock:
            job = self._job
        if job and job.is_alive():
            return job
        return None

    def superseded(self, job):
        """True once another job has taken the slot (and the shared log)."""
        with self.lock:
            return self._job is not None and self._job is not job

    def start(self, path):
        """Launch a payload, replacing any running job. Returns once it is spawned.

        Raises:
            PathRejected: the path failed validation or does not exist
            JobStartFailed: the wrapper could not be spawned
        """
        err = _validate_payload_path(path, self.payload_root, self.entry_name)
        if err:
            logger.warning(f"[Job] Rejected path {path!r}: {err}")
            raise PathRejected(err)
        if not os.path.isfile(path):
            raise PathRejected("Not found", code="PAYLOAD_NOT_FOUND", status=404)

        with self._start_lock:
            return self._launch(path)

    def _launch(self, path):
        # The previous job is dead before the log it shares is truncated
        job = _Job(path, self.log_path)
        with self.lock:
            previous = self._job
            self._job = job
        if previous is not None:
            self._end(previous, JOB_STOPPED)

        # Truncate the shared log and forget answers meant for the old job
        with open(self.log_path, "w", encoding="utf-8"):
            pass
        self.bridge.clear()

        wrapper_path = _write_wrapper()
        job.wrapper_path = wrapper_path
        try:
            with open(self.log_path, "ab") as log_fh:
                proc = subprocess.Popen(
                    [self.bash_path, wrapper_path, path],
                    cwd=os.path.dirname(path),
                    stdin=subprocess.DEVNULL,
                    stdout=log_fh,
                    stderr=subprocess.STDOUT,
                    env=_wrapper_env(self.bridge.mailbox_path, self.prompt_timeout),
                    start_new_session=True,
                )
        except OSError as exc:
            _remove_wrapper(wrapper_path)
            with self.lock:
                if self._job is job:
                    self._job = None
            logger.error(f"[Job] Failed to spawn {path}: {exc}", exc_info=True)
            raise JobStartFailed("Failed to start payload") from exc

        job.proc = proc
        job.started_at = time.time()
        job.set_state(JOB_RUNNING)
        logger.info(f"[Job] Started {path} (pid={proc.pid})")
        threading.Thread(target=self._reap, args=(job,), daemon=True).start()
        return job

    def stop(self):
        with self._start_lock:
            with self.lock:
                job = self._job
                self._job = None
            if job is None or job.done.is_set():
                return "not_running"
            self._end(job, JOB_STOPPED)
            self.bridge.clear()
            return "stopped"

    def mark_awaiting(self, job):
        if job.set_state(JOB_AWAITING_INPUT):
            logger.debug(f"[Job] {job.path} awaiting input")

    def mark_running(self, job=None):
        job = job or self.active()
        if job and job.state == JOB_AWAITING_INPUT:
            job.set_state(JOB_RUNNING)

    def release(self, job):
        """Free what a finished job holds: its wrapper file and, if still ours, the slot.

        A viewer that disconnects early releases nothing; the job keeps running.
        """
        if not job.done.is_set():
            return
        _remove_wrapper(job.wrapper_path)
        with self.lock:
            if self._job is job:
                self._job = None

    def _end(self, job, state):
        # State first so the reaper does not record the SIGTERM exit as a failure
        job.set_state(state)
        outcome = _terminate(job.proc, self.stop_grace)
        logger.info(f"[Job] Terminated {job.path}: {outcome}")
        return outcome

    def _reap(self, job):
        rc = job.proc.wait()
        job.returncode = rc
        job.set_state(JOB_FINISHED if rc == 0 else JOB_FAILED)
        job.finish_time = time.time()
        _remove_wrapper(job.wrapper_path)
        with self.lock:
            if self._job is job:
                self._job = None
                self.bridge.clear()
        job.done.set()
        logger.info(f"[Job] {job.path} exited with returncode={rc} state={job.state}")
