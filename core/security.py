"""Cross-origin checks and the one-use stream token."""
import hmac
import secrets
import threading
from urllib.parse import urlsplit

from utils.config import logger
from utils.errors import AuthRejected

# Actions with no side effects skip the origin check
_READ_ONLY_ACTIONS = {"list"}


def _header_host(value):
    """Return the host[:port] component of an Origin or Referer value."""
    value = (value or "").strip()
    if "//" not in value:
        # "null" origins and bare hosts
        return value.split("/", 1)[0]
    return urlsplit(value).netloc


def _check_origin(action, origin, referer, host):
    """Reject cross-origin requests for state-changing actions.

    Browsers attach Origin (or at least Referer) to cross-site requests, so a
    mismatch with our own Host means another site is driving the request.
    Clients that send neither (curl, scripts) are allowed through; the token,
    path and response checks still apply to them.

    Raises:
        AuthRejected: with code ORIGIN_MISMATCH or REFERER_MISMATCH
    """
    if action in _READ_ONLY_ACTIONS:
        return None
    host = (host or "").strip()
    if origin:
        if _header_host(origin) != host:
            logger.warning(f"[CSRF] Origin mismatch for action={action}: origin={origin!r} host={host!r}")
            raise AuthRejected("CSRF protection: Origin mismatch", code="ORIGIN_MISMATCH")
        return None
    if referer:
        if _header_host(referer) != host:
            logger.warning(f"[CSRF] Referer mismatch for action={action}: referer={referer!r} host={host!r}")
            raise AuthRejected("CSRF protection: Referer mismatch", code="REFERER_MISMATCH")
        return None
    return None


class _TokenSlot:
    """Holds at most one outstanding stream token.

    EventSource cannot attach custom headers, so opening the run stream is
    authorised by a token fetched beforehand through a normal request.
    """

    def __init__(self):
        self.lock = threading.Lock()
        self._token = None

    def issue(self):
        token = secrets.token_hex(16)
        with self.lock:
            replaced = self._token is not None
            self._token = token
        if replaced:
            logger.info("[Token] Issued new token (previous unconsumed token discarded)")
        else:
            logger.info("[Token] Issued new token")
        return token

    def consume(self, candidate):
        with self.lock:
            stored = self._token
            self._token = None
        if not stored or not isinstance(candidate, str):
            return False
        return hmac.compare_digest(stored.encode("utf-8"), candidate.encode("utf-8"))

    def require(self, candidate):
        if not self.consume(candidate):
            logger.warning("[Token] Rejected invalid or missing token")
            raise AuthRejected(
                "CSRF protection: Invalid or missing token. Refresh and try again.",
                code="INVALID_TOKEN",
            )
