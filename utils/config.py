"""Shared configuration, paths, and logging."""
import os
import logging
import time

# Setup logging
_LOG_FILE = os.environ.get("NAUTILUS_LOG_FILE")
logging.basicConfig(
    level=logging.DEBUG if os.environ.get("NAUTILUS_DEBUG") else logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
    handlers=[
        logging.FileHandler(_LOG_FILE, mode='a') if _LOG_FILE else logging.StreamHandler()
    ]
)
logger = logging.getLogger("nautilus")

APP_START_TIME = time.time()

# Payload location and entry script
PAYLOAD_ROOT = os.environ.get("NAUTILUS_PAYLOAD_ROOT", "/root/payloads/user")
ENTRY_NAME = os.environ.get("NAUTILUS_ENTRY_NAME", "payload.sh")

# Host-local ephemeral state
OUTPUT_LOG_PATH = os.environ.get("NAUTILUS_OUTPUT_LOG", "/tmp/nautilus_output.log")
RESPONSE_FILE_PATH = os.environ.get("NAUTILUS_RESPONSE_FILE", "/tmp/nautilus_response")
CACHE_FILE_PATH = os.environ.get("NAUTILUS_CACHE_FILE", "/tmp/nautilus_cache.json")

# External catalog builder
CATALOG_BUILDER_PATH = os.environ.get(
    "NAUTILUS_CATALOG_BUILDER",
    os.path.join(PAYLOAD_ROOT, "general", "nautilus", "build_cache.sh"),
)
CATALOG_TIMEOUT_SEC = int(os.environ.get("NAUTILUS_CATALOG_TIMEOUT", "60"))

# Timing
POLL_INTERVAL_SEC = float(os.environ.get("NAUTILUS_POLL_INTERVAL", "0.2"))
RESPONSE_POLL_SEC = float(os.environ.get("NAUTILUS_RESPONSE_POLL", "0.5"))
PROMPT_TIMEOUT_SEC = int(os.environ.get("NAUTILUS_PROMPT_TIMEOUT", "150"))

BASH_PATH = os.environ.get("NAUTILUS_BASH", "/bin/bash")
# Seconds a signalled job gets to exit before its process group is killed
STOP_GRACE_SEC = float(os.environ.get("NAUTILUS_STOP_GRACE", "3"))

MAX_RESPONSE_LEN = 256
PROMPT_KINDS = ("alert", "error", "confirm", "text", "number", "ip", "mac")
COLOR_TAGS = ("red", "green", "yellow", "cyan", "blue", "magenta")
