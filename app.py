import os
import time

from flask import Flask, jsonify, request, Response

from utils.config import logger, APP_START_TIME, CACHE_FILE_PATH
from utils.errors import NautilusError
from utils.validation import _request_param, _validate_response
from core.catalog import _load_catalog, _refresh_catalog
from core.output_relay import OutputRelay
from core.security import _check_origin
from core.state import _TOKENS, _BRIDGE, _SUPERVISOR

APP = Flask(__name__)

# API Error Codes - Centralized definitions for consistent error handling
ERR_UNKNOWN_ACTION = "UNKNOWN_ACTION"
ERR_CACHE_NOT_READY = "CACHE_NOT_READY"
ERR_INVALID_RESPONSE = "INVALID_RESPONSE"
ERR_OPERATION_FAILED = "OPERATION_FAILED"


def _format_duration(seconds):
    seconds = int(max(0, seconds))
    mins, sec = divmod(seconds, 60)
    hrs, mins = divmod(mins, 60)
    days, hrs = divmod(hrs, 24)
    parts = []
    if days:
        parts.append(f"{days}d")
    if hrs:
        parts.append(f"{hrs}h")
    if mins:
        parts.append(f"{mins}m")
    parts.append(f"{sec}s")
    return " ".join(parts)


def _error_response(message, code=None, status=400):
    """
    Standard error response format for all API endpoints.

    Args:
        message: Human-readable error message
        code: Optional error code (e.g., "INVALID_TOKEN", "PATH_REJECTED")
        status: HTTP status code (default 400)

    Returns:
        Tuple of (jsonify response, status code)
    """
    payload = {"error": message}
    if code:
        payload["code"] = code
    return jsonify(payload), status


@APP.errorhandler(NautilusError)
def _handle_nautilus_error(exc):
    return _error_response(exc.message, code=exc.code, status=exc.status)


def _list_payloads():
    text = _load_catalog(CACHE_FILE_PATH)
    if text is None:
        return _error_response("Cache not ready. Refresh page.", code=ERR_CACHE_NOT_READY, status=503)
    return Response(text, mimetype="application/json")


def _issue_token():
    return jsonify({"token": _TOKENS.issue()})


def _run_payload():
    path = _request_param(request, "path")
    token = _request_param(request, "token")
    _TOKENS.require(token)
    job = _SUPERVISOR.start(path)
    relay = OutputRelay(_SUPERVISOR, job)
    return Response(
        relay.stream(),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


def _stop_payload():
    return jsonify({"status": _SUPERVISOR.stop()})


def _respond():
    response = _request_param(request, "response")
    err = _validate_response(response)
    if err:
        return _error_response(err, code=ERR_INVALID_RESPONSE, status=400)
    if _SUPERVISOR.active() is None:
        return jsonify({"status": "not_running"})
    _BRIDGE.deliver(response)
    return jsonify({"status": "ok"})


def _refresh():
    _refresh_catalog()
    return jsonify({"status": "refreshed"})


_ACTIONS = {
    "list": _list_payloads,
    "token": _issue_token,
    "run": _run_payload,
    "stop": _stop_payload,
    "respond": _respond,
    "refresh": _refresh,
}


@APP.route("/api", methods=["GET", "POST"])
@APP.route("/cgi-bin/api.sh", methods=["GET", "POST"])
def api():
    action = _request_param(request, "action")
    handler = _ACTIONS.get(action)
    if handler is None:
        return _error_response("Unknown action", code=ERR_UNKNOWN_ACTION, status=400)
    _check_origin(
        action,
        request.headers.get("Origin"),
        request.headers.get("Referer"),
        request.headers.get("Host"),
    )
    try:
        return handler()
    except NautilusError:
        raise
    except Exception as exc:
        logger.error(f"[API] Action {action} failed: {exc}", exc_info=True)
        return _error_response("Operation failed", code=ERR_OPERATION_FAILED, status=500)


@APP.get("/health")
def health():
    job = _SUPERVISOR.active()
    return jsonify({
        "ok": True,
        "uptime": _format_duration(time.time() - APP_START_TIME),
        "job": job.snapshot() if job else None,
        "prompt_pending": _BRIDGE.pending() is not None,
    })


if __name__ == "__main__":
    port = int(os.environ.get("PORT", "5025"))
    logger.info(f"Nautilus API listening on port {port}")
    APP.run(host="0.0.0.0", port=port, debug=False, threaded=True)
