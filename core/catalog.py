"""Payload catalog cache served by the list action."""
import json
import os
import pathlib
import subprocess

from utils.config import logger, CACHE_FILE_PATH, CATALOG_BUILDER_PATH, CATALOG_TIMEOUT_SEC
from utils.errors import CatalogRefreshFailed


def _load_catalog(path=CACHE_FILE_PATH):
    """Return the cached catalog document as text, or None if it is not built yet."""
    path = pathlib.Path(path)
    if not path.exists():
        return None
    text = path.read_text(encoding="utf-8")
    try:
        json.loads(text)
    except json.JSONDecodeError:
        logger.warning(f"[Catalog] Ignoring malformed cache at {path}")
        return None
    return text


def _refresh_catalog(builder=CATALOG_BUILDER_PATH, timeout_sec=CATALOG_TIMEOUT_SEC):
    """Run the external catalog builder and wait for it to finish."""
    if not os.path.isfile(builder):
        logger.error(f"[Catalog] Builder not found: {builder}")
        raise CatalogRefreshFailed("Catalog builder not found")
    args = [builder] if os.access(builder, os.X_OK) else ["/bin/sh", builder]
    try:
        proc = subprocess.run(
            args,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            timeout=timeout_sec,
        )
    except subprocess.TimeoutExpired as exc:
        logger.error(f"[Catalog] Builder timed out after {timeout_sec}s")
        raise CatalogRefreshFailed("Catalog refresh timed out") from exc
    if proc.returncode != 0:
        logger.error(f"[Catalog] Builder exited with {proc.returncode}: {proc.stderr.strip()[:500]}")
        raise CatalogRefreshFailed("Catalog refresh failed")
    logger.info("[Catalog] Cache rebuilt")
