"""Process-wide single-slot state: the active job, the stream token and the response mailbox."""
from utils.config import (
    OUTPUT_LOG_PATH,
    RESPONSE_FILE_PATH,
    PAYLOAD_ROOT,
    ENTRY_NAME,
    PROMPT_TIMEOUT_SEC,
    RESPONSE_POLL_SEC,
    BASH_PATH,
)
from core.prompt_bridge import PromptBridge
from core.security import _TokenSlot
from core.supervisor import JobSupervisor

_TOKENS = _TokenSlot()
_BRIDGE = PromptBridge(RESPONSE_FILE_PATH, timeout_sec=PROMPT_TIMEOUT_SEC, poll_sec=RESPONSE_POLL_SEC)
_SUPERVISOR = JobSupervisor(
    OUTPUT_LOG_PATH,
    _BRIDGE,
    payload_root=PAYLOAD_ROOT,
    entry_name=ENTRY_NAME,
    prompt_timeout=PROMPT_TIMEOUT_SEC,
    bash_path=BASH_PATH,
)
# An answer means the job is about to resume
_BRIDGE.on_answer = _SUPERVISOR.mark_running
