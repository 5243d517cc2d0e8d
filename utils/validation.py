"""Request validation helpers."""
import posixpath
import string

from utils.config import MAX_RESPONSE_LEN, PAYLOAD_ROOT, ENTRY_NAME

# Letters, digits, space, dot, colon, hyphen: enough for confirmation flags,
# numbers, IP and MAC addresses and short text, and nothing a shell expands.
_RESPONSE_SAFE_CHARS = frozenset(string.ascii_letters + string.digits + " .:-")


def _validate_response(value, max_len=MAX_RESPONSE_LEN):
    if not isinstance(value, str):
        return "response must be a string"
    if any(ch not in _RESPONSE_SAFE_CHARS for ch in value):
        return "Invalid characters in response"
    if len(value) > max_len:
        return "Response too long"
    return None


def _validate_payload_path(value, root=PAYLOAD_ROOT, entry_name=ENTRY_NAME):
    if not isinstance(value, str) or not value:
        return "Invalid path"
    if ".." in value.split("/"):
        return "Path traversal not allowed"
    root = root.rstrip("/")
    if not posixpath.isabs(value) or not value.startswith(root + "/"):
        return "Invalid path"
    if posixpath.basename(value) != entry_name:
        return "Invalid payload file"
    return None


def _request_param(req, name, default=""):
    """Read a parameter from the query string or a form body."""
    value = req.values.get(name)
    if value is None:
        body = req.get_json(silent=True)
        if isinstance(body, dict):
            value = body.get(name)
    if value is None:
        return default
    return value if isinstance(value, str) else str(value)
