"""Runtime configuration loaded from environment variables."""

from __future__ import annotations

import os


def env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


def env_float(name: str, default: float, minimum: float = 0.0, maximum: float = float("inf")) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if minimum <= value <= maximum else default


def env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ISO A4 in millimetres.
PAGE_WIDTH_MM = env_float("INVOICE_PAGE_WIDTH_MM", 210.0, minimum=1.0)
PAGE_HEIGHT_MM = env_float("INVOICE_PAGE_HEIGHT_MM", 297.0, minimum=1.0)

HIGH_SCALE = env_float("INVOICE_HIGH_SCALE", 2.0, minimum=1.0, maximum=4.0)
LOW_SCALE = env_float("INVOICE_LOW_SCALE", 1.0, minimum=1.0, maximum=1.2)
LOW_JPEG_QUALITY = env_int("INVOICE_LOW_JPEG_QUALITY", 70, minimum=1)

VIEWPORT_WIDTH = env_int("INVOICE_VIEWPORT_WIDTH", 1024, minimum=100)
VIEWPORT_HEIGHT = env_int("INVOICE_VIEWPORT_HEIGHT", 768, minimum=100)
CAPTURE_TIMEOUT_MS = env_int("INVOICE_CAPTURE_TIMEOUT_MS", 15000, minimum=100)
AUTO_EXPORT_SETTLE_MS = env_int("INVOICE_AUTO_EXPORT_SETTLE_MS", 800, minimum=0)
EXPORT_TIMEOUT_MS = env_int("INVOICE_EXPORT_TIMEOUT_MS", 60000, minimum=1000)

MAX_BODY_BYTES = env_int("INVOICE_MAX_BODY_BYTES", 16 * 1024 * 1024, minimum=1024)
MAX_INFLIGHT_EXPORTS = env_int("INVOICE_MAX_INFLIGHT_EXPORTS", 16, minimum=1)
EXPORT_QUEUE_TIMEOUT_MS = env_int("INVOICE_EXPORT_QUEUE_TIMEOUT_MS", 5000, minimum=0)
LISTEN_BACKLOG = env_int("INVOICE_LISTEN_BACKLOG", 512, minimum=1)

OUTPUT_DIR = env_str("INVOICE_OUTPUT_DIR", "exports")
FILE_PREFIX = env_str("INVOICE_FILE_PREFIX", "Cuenta de Cobro")
LOG_LEVEL = env_str("INVOICE_LOG_LEVEL", "INFO")
LOG_JSON = env_bool("INVOICE_LOG_JSON", False)
