"""Bash wrapper that runs a payload with the interactive helper commands.

Payloads are shell scripts written against the on-host pager commands
(LOG, CONFIRMATION_DIALOG, IP_PICKER, ...). The wrapper redefines those
commands so their output lands in the job log and their questions become
prompt markers answered through the response mailbox.
"""
import os
import tempfile

WRAPPER_SCRIPT = r'''#!/bin/bash
# Generated by nautilus; removed when the job ends.

_nautilus_emit() {
    local color="$1"
    shift
    if [ -n "$color" ]; then
        echo "[${color}] $*"
    else
        echo "$*"
    fi
}

_nautilus_forward() {
    local bin="/usr/bin/$1"
    shift
    if [ -x "$bin" ]; then
        "$bin" "$@" 2>/dev/null || true
    fi
}

LOG() {
    local color=""
    if [ "$#" -gt 1 ]; then
        color="$1"
        shift
    fi
    _nautilus_emit "$color" "$@"
    _nautilus_forward LOG ${color:+"$color"} "$@"
}

LED() {
    _nautilus_emit "blue" "LED: $*"
    _nautilus_forward LED "$@"
}

SPINNER() {
    _nautilus_emit "cyan" "SPINNER: $*"
    _nautilus_forward SPINNER "$@"
}

SPINNER_STOP() {
    _nautilus_emit "cyan" "SPINNER_STOP"
    _nautilus_forward SPINNER_STOP
}

# Poll the response mailbox; print the answer, or the default on timeout.
_wait_response() {
    local default="$1"
    local resp_file="${NAUTILUS_RESPONSE_FILE:-/tmp/nautilus_response}"
    local ticks=$(( ${NAUTILUS_PROMPT_TIMEOUT:-150} * 2 ))
    while [ ! -f "$resp_file" ] && [ "$ticks" -gt 0 ]; do
        sleep 0.5
        ticks=$((ticks - 1))
    done
    if [ -f "$resp_file" ]; then
        cat "$resp_file"
        rm -f "$resp_file"
    else
        echo -n "$default"
    fi
}

# Prompts go to stderr: stdout is what $(...) captures as the answer.
_nautilus_prompt() {
    local kind="$1"
    local default="$2"
    shift 2
    if [ -n "$default" ]; then
        echo "[PROMPT:${kind}:${default}] $*" >&2
    else
        echo "[PROMPT:${kind}] $*" >&2
    fi
    sleep 0.1
}

ALERT() {
    _nautilus_prompt alert "" "$*"
    _wait_response "" >/dev/null
}

ERROR_DIALOG() {
    _nautilus_prompt error "" "$*"
    _wait_response "" >/dev/null
}

CONFIRMATION_DIALOG() {
    _nautilus_prompt confirm "" "$*"
    local resp
    resp=$(_wait_response "0")
    if [ "$resp" = "1" ]; then
        echo -n "1"
    else
        echo -n "0"
    fi
}

PROMPT() {
    _nautilus_prompt text "" "$*"
    _wait_response ""
}

TEXT_PICKER() {
    _nautilus_prompt text "$2" "$1"
    _wait_response "$2"
}

NUMBER_PICKER() {
    _nautilus_prompt number "$2" "$1"
    _wait_response "$2"
}

IP_PICKER() {
    _nautilus_prompt ip "$2" "$1"
    _wait_response "$2"
}

MAC_PICKER() {
    _nautilus_prompt mac "$2" "$1"
    _wait_response "$2"
}

export -f _nautilus_emit _nautilus_forward _nautilus_prompt _wait_response
export -f LOG LED SPINNER SPINNER_STOP ALERT ERROR_DIALOG CONFIRMATION_DIALOG
export -f PROMPT TEXT_PICKER NUMBER_PICKER IP_PICKER MAC_PICKER

cd "$(dirname "$1")" || exit 1
source "$1"
'''


def _write_wrapper(directory=None):
    """Write the wrapper to a private temp file and return its path."""
    fd, path = tempfile.mkstemp(prefix="nautilus_wrapper_", suffix=".sh", dir=directory)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(WRAPPER_SCRIPT)
    os.chmod(path, 0o700)
    return path


def _remove_wrapper(path):
    if not path:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def _wrapper_env(response_file, prompt_timeout):
    env = os.environ.copy()
    env["NAUTILUS_RESPONSE_FILE"] = response_file
    env["NAUTILUS_PROMPT_TIMEOUT"] = str(int(prompt_timeout))
    return env
