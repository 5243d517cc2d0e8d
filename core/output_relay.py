"""Turn the growing job log into an ordered event stream."""
import json
import os
import time

from utils.config import logger, COLOR_TAGS, POLL_INTERVAL_SEC
from core.prompt_bridge import _PendingPrompt

EVENT_DATA = "data"
EVENT_PROMPT = "prompt"
EVENT_DONE = "done"


def _line_color(line):
    if not line.startswith("["):
        return None
    tag, sep, _ = line[1:].partition("]")
    if sep and tag in COLOR_TAGS:
        return tag
    return None


def _classify_line(line):
    """Map one log line to an (event, payload) pair.

    Prompt markers become structured prompt events; everything else is text,
    tagged with a color when the line starts with one of the palette tags.
    """
    prompt = _PendingPrompt.from_marker(line)
    if prompt is not None:
        return EVENT_PROMPT, prompt
    payload = {"text": line}
    color = _line_color(line)
    if color:
        payload["color"] = color
    return EVENT_DATA, payload


def _format_sse(event, data):
    # Unnamed events reach EventSource.onmessage
    body = json.dumps(data)
    if event == EVENT_DATA:
        return f"data: {body}\n\n"
    return f"event: {event}\ndata: {body}\n\n"


class OutputRelay:
    """Tails one job's log for the lifetime of a run request.

    The cursor is a byte offset into the log and only moves after a whole
    batch of records has been handed out, so an interrupted batch is
    re-read rather than skipped.
    """

    def __init__(self, supervisor, job, poll_interval=POLL_INTERVAL_SEC):
        self.supervisor = supervisor
        self.job = job
        self.poll_interval = poll_interval
        self.records_sent = 0

    def _read_new_lines(self, final=False):
        """Return (lines, new_offset) for complete lines past the cursor."""
        try:
            with open(self.job.log_path, "rb") as fh:
                fh.seek(self.job.output_cursor)
                chunk = fh.read()
        except FileNotFoundError:
            return [], self.job.output_cursor
        if not chunk:
            return [], self.job.output_cursor
        if final:
            consumed = len(chunk)
        else:
            # Hold back a trailing partial line until its newline arrives
            consumed = chunk.rfind(b"\n") + 1
        if consumed == 0:
            return [], self.job.output_cursor
        text = chunk[:consumed].decode("utf-8", errors="replace")
        lines = text.split("\n")
        if lines and lines[-1] == "":
            lines.pop()
        return [line.rstrip("\r") for line in lines], self.job.output_cursor + consumed

    def _has_unread(self):
        try:
            return os.path.getsize(self.job.log_path) > self.job.output_cursor
        except OSError:
            return False

    def _handle(self, line):
        event, payload = _classify_line(line)
        if event == EVENT_PROMPT:
            self.supervisor.bridge.announce(payload)
            self.supervisor.mark_awaiting(self.job)
            return event, payload.to_event()
        self.supervisor.mark_running(self.job)
        return event, payload

    def events(self):
        """Yield (event, payload) pairs until the job has exited and its log is drained."""
        job = self.job
        try:
            while True:
                if self.supervisor.superseded(job):
                    # The shared log now belongs to a newer job
                    break
                alive = job.is_alive()
                lines, new_offset = self._read_new_lines(final=not alive)
                for line in lines:
                    yield self._handle(line)
                job.output_cursor = new_offset
                self.records_sent += len(lines)
                if not alive and not self._has_unread():
                    break
                if alive:
                    time.sleep(self.poll_interval)
            yield EVENT_DONE, {"status": "complete", "state": job.state, "returncode": job.returncode}
        finally:
            self.supervisor.release(job)
            logger.info(f"[Relay] Stream for {job.path} closed after {self.records_sent} record(s)")

    def stream(self):
        """Yield the events as Server-Sent Event frames."""
        for event, payload in self.events():
            yield _format_sse(event, payload)
