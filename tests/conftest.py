"""Shared test fixtures for pytest."""
import sys
import os
import json
import stat
import time
import pytest
import tempfile
import shutil

# Add parent directory to path so we can import from project
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Point every host path at a scratch directory before utils.config is imported
_STATE_DIR = tempfile.mkdtemp(prefix="nautilus_test_")
os.environ["NAUTILUS_PAYLOAD_ROOT"] = os.path.join(_STATE_DIR, "payloads", "user")
os.environ["NAUTILUS_OUTPUT_LOG"] = os.path.join(_STATE_DIR, "output.log")
os.environ["NAUTILUS_RESPONSE_FILE"] = os.path.join(_STATE_DIR, "response")
os.environ["NAUTILUS_CACHE_FILE"] = os.path.join(_STATE_DIR, "cache.json")
os.environ["NAUTILUS_CATALOG_BUILDER"] = os.path.join(_STATE_DIR, "build_cache.sh")
os.environ["NAUTILUS_POLL_INTERVAL"] = "0.05"
os.environ["NAUTILUS_RESPONSE_POLL"] = "0.05"
os.environ["NAUTILUS_PROMPT_TIMEOUT"] = "5"
os.environ["NAUTILUS_STOP_GRACE"] = "1"
os.makedirs(os.environ["NAUTILUS_PAYLOAD_ROOT"], exist_ok=True)


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(_STATE_DIR, ignore_errors=True)


def _write_script(path, body):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write("#!/bin/bash\n" + body.strip() + "\n")
    os.chmod(path, os.stat(path).st_mode | stat.S_IXUSR)
    return path


def parse_sse(raw):
    """Split an SSE body into (event, data) pairs; unnamed events are "data"."""
    events = []
    for frame in raw.split("\n\n"):
        if not frame.strip():
            continue
        event = "data"
        data = None
        for line in frame.split("\n"):
            if line.startswith("event: "):
                event = line[len("event: "):]
            elif line.startswith("data: "):
                data = json.loads(line[len("data: "):])
        events.append((event, data))
    return events


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    tmpdir = tempfile.mkdtemp()
    yield tmpdir
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def payload_root():
    """The configured payload root (created at session start)."""
    return os.environ["NAUTILUS_PAYLOAD_ROOT"]


@pytest.fixture
def make_payload(payload_root):
    """Factory writing <root>/<name>/payload.sh and returning its path."""
    created = []

    def _make(name, body, root=None):
        path = os.path.join(root or payload_root, name, "payload.sh")
        created.append(os.path.dirname(path))
        return _write_script(path, body)

    yield _make
    for directory in created:
        shutil.rmtree(directory, ignore_errors=True)


@pytest.fixture
def bridge(temp_dir):
    """A prompt bridge with its own mailbox and fast polling."""
    from core.prompt_bridge import PromptBridge
    return PromptBridge(os.path.join(temp_dir, "response"), timeout_sec=5, poll_sec=0.05)


@pytest.fixture
def supervisor(temp_dir, bridge):
    """A supervisor isolated from the app's global one."""
    from core.supervisor import JobSupervisor
    root = os.path.join(temp_dir, "payloads", "user")
    os.makedirs(root, exist_ok=True)
    sup = JobSupervisor(
        os.path.join(temp_dir, "output.log"),
        bridge,
        payload_root=root,
        entry_name="payload.sh",
        prompt_timeout=5,
    )
    bridge.on_answer = sup.mark_running
    yield sup
    sup.stop()


@pytest.fixture
def app():
    """Create Flask app for testing."""
    from app import APP
    APP.config['TESTING'] = True
    return APP


@pytest.fixture
def client(app):
    """Create Flask test client; stops any job a test left running."""
    from core.state import _SUPERVISOR
    yield app.test_client()
    _SUPERVISOR.stop()


@pytest.fixture
def catalog_files():
    """Paths of the catalog cache and builder; removed after the test."""
    cache = os.environ["NAUTILUS_CACHE_FILE"]
    builder = os.environ["NAUTILUS_CATALOG_BUILDER"]
    yield cache, builder
    for path in (cache, builder):
        if os.path.exists(path):
            os.remove(path)


def wait_for(predicate, timeout=5.0, interval=0.02):
    """Poll until predicate() is truthy; return its last value."""
    deadline = time.monotonic() + timeout
    while True:
        value = predicate()
        if value or time.monotonic() >= deadline:
            return value
        time.sleep(interval)
