"""Blocking prompts answered by a later, separate request.

A job asks a question by writing a marker line to its diagnostic channel and
then polling a single-slot mailbox until an answer shows up or the wait times
out. The mailbox is a small file so that an external bash job can poll it
just as well as Python code can.
"""
import os
import re
import sys
import threading
import time

from utils.config import logger, PROMPT_KINDS, PROMPT_TIMEOUT_SEC, RESPONSE_POLL_SEC
from utils.errors import ValidationRejected
from utils.validation import _validate_response

_PROMPT_MARKER_RE = re.compile(r"^\[PROMPT:([A-Za-z]+)(?::([^\]]*))?\] ?(.*)$")


class _PendingPrompt:
    """The question a job is currently blocked on."""

    def __init__(self, kind, message, default="", announced_at=None):
        self.kind = kind
        self.message = message
        self.default = default or ""
        self.announced_at = announced_at if announced_at is not None else time.monotonic()

    def to_marker(self):
        if self.default:
            return f"[PROMPT:{self.kind}:{self.default}] {self.message}"
        return f"[PROMPT:{self.kind}] {self.message}"

    def to_event(self):
        return {"kind": self.kind, "message": self.message, "default": self.default}

    @classmethod
    def from_marker(cls, line):
        """Parse a marker line, or return None if the line is not a known prompt."""
        match = _PROMPT_MARKER_RE.match(line or "")
        if not match:
            return None
        kind = match.group(1).lower()
        if kind not in PROMPT_KINDS:
            return None
        return cls(kind, match.group(3), match.group(2) or "")

    def __repr__(self):
        return f"_PendingPrompt(kind={self.kind!r}, message={self.message!r}, default={self.default!r})"


class PromptBridge:
    """Server and job halves of the prompt mailbox.

    The server uses announce/pending/deliver/clear. take, wait_response and
    ask are the job half for payloads written in Python; the bash wrapper
    implements the same half in shell (`_wait_response` in core/wrapper.py)
    against the same marker and mailbox formats.
    """

    def __init__(self, mailbox_path, timeout_sec=PROMPT_TIMEOUT_SEC, poll_sec=RESPONSE_POLL_SEC, on_answer=None):
        self.mailbox_path = mailbox_path
        self.timeout_sec = timeout_sec
        self.poll_sec = poll_sec
        self.on_answer = on_answer
        self.lock = threading.Lock()
        self._pending = None

    # -- mailbox -------------------------------------------------------

    def _write_mailbox(self, value):
        directory = os.path.dirname(self.mailbox_path) or "."
        os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.mailbox_path}.{os.getpid()}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            fh.write(value)
        # Readers see either no file or the whole value
        os.replace(tmp_path, self.mailbox_path)

    def take(self):
        """Read and clear the mailbox; None when it is empty."""
        with self.lock:
            try:
                with open(self.mailbox_path, "r", encoding="utf-8") as fh:
                    value = fh.read()
            except FileNotFoundError:
                return None
            try:
                os.remove(self.mailbox_path)
            except FileNotFoundError:
                pass
        return value.rstrip("\n")

    def clear(self):
        """Drop any unharvested answer and any outstanding prompt."""
        with self.lock:
            self._pending = None
            try:
                os.remove(self.mailbox_path)
            except FileNotFoundError:
                pass

    # -- pending prompt ------------------------------------------------

    def announce(self, prompt):
        with self.lock:
            if self._pending is not None:
                logger.warning(f"[Prompt] Replacing unanswered prompt {self._pending!r}")
            self._pending = prompt
        logger.info(f"[Prompt] Job is waiting for {prompt.kind} input")

    def pending(self):
        """The outstanding prompt, or None once it was answered or its wait expired."""
        with self.lock:
            prompt = self._pending
            if prompt is None:
                return None
            if time.monotonic() - prompt.announced_at > self.timeout_sec:
                self._pending = None
                return None
            return prompt

    # -- answering -----------------------------------------------------

    def deliver(self, raw_response):
        """Validate an answer and put it in the mailbox.

        A response arriving while no prompt is outstanding is still stored;
        the next prompt of the job picks it up.

        Raises:
            ValidationRejected: the mailbox is left untouched
        """
        err = _validate_response(raw_response)
        if err:
            logger.warning(f"[Prompt] Rejected response: {err}")
            raise ValidationRejected(err)
        with self.lock:
            self._write_mailbox(raw_response)
            answered = self._pending
            self._pending = None
        if answered is None:
            logger.info("[Prompt] Response stored with no prompt outstanding")
        else:
            logger.info(f"[Prompt] Response delivered for {answered.kind} prompt")
        if self.on_answer:
            self.on_answer()

    # -- job side ------------------------------------------------------

    def wait_response(self, default="", timeout=None):
        """Poll the mailbox until a value appears or the wait times out.

        A timeout is not an error: the default (or empty string) is returned so
        the job never hangs on a client that went away.
        """
        timeout = self.timeout_sec if timeout is None else timeout
        deadline = time.monotonic() + timeout
        while True:
            value = self.take()
            if value is not None:
                return value
            if time.monotonic() >= deadline:
                logger.info("[Prompt] Wait timed out, using default")
                return default or ""
            time.sleep(self.poll_sec)

    def ask(self, kind, message, default="", stream=None, timeout=None):
        """Emit a prompt marker and block until it is answered or times out."""
        prompt = _PendingPrompt(kind, message, default)
        if prompt.kind not in PROMPT_KINDS:
            raise ValueError(f"unknown prompt kind: {kind}")
        stream = stream if stream is not None else sys.stderr
        stream.write(prompt.to_marker() + "\n")
        stream.flush()
        value = self.wait_response(prompt.default, timeout)
        if prompt.kind == "confirm":
            return "1" if value == "1" else "0"
        return value
