"""
Pipeline configuration.

Values are read from the environment (and a local .env file, if present) each
time get_settings() is called, so tests can override them with monkeypatch.

Environment variables
---------------------
MAILBODY_BASE64_MIN_LENGTH    Base64 auto-detection only fires on content
                              strictly longer than this (default: 50).
MAILBODY_HEADER_SCAN_LINES    Lines scanned for leftover MIME headers (default: 20).
MAILBODY_MAX_HTML_LENGTH      HTML longer than this is truncated before parsing
                              (default: 1000000 characters).
MAILBODY_MAX_NESTING_DEPTH    Elements nested deeper than this are flattened to
                              text (default: 256).
MAILBODY_LINK_TARGET          When set (e.g. "_blank"), anchors get this target
                              plus rel="noopener noreferrer". Unset by default.
MAILBODY_PREVIEW_LENGTH       Preview truncation length (default: 100).
"""

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_BASE64_MIN_LENGTH = 50
DEFAULT_HEADER_SCAN_LINES = 20
DEFAULT_MAX_HTML_LENGTH = 1_000_000
DEFAULT_MAX_NESTING_DEPTH = 256
DEFAULT_PREVIEW_LENGTH = 100


class PipelineSettings(BaseModel):
    """Tunable policy constants for decoding and sanitization."""

    model_config = {"frozen": True}

    base64_min_length: int = Field(default=DEFAULT_BASE64_MIN_LENGTH, ge=0)
    header_scan_lines: int = Field(default=DEFAULT_HEADER_SCAN_LINES, ge=0)
    max_html_length: int = Field(default=DEFAULT_MAX_HTML_LENGTH, gt=0)
    max_nesting_depth: int = Field(default=DEFAULT_MAX_NESTING_DEPTH, gt=0)
    link_target: Optional[str] = None
    preview_length: int = Field(default=DEFAULT_PREVIEW_LENGTH, gt=0)


def _int_from_env(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default

    try:
        value = int(raw)
    except ValueError:
        logger.warning("%s=%r is not an integer; using default %d", name, raw, default)
        return default

    if value < minimum:
        logger.warning("%s=%d is below %d; using default %d", name, value, minimum, default)
        return default
    return value


def get_settings() -> PipelineSettings:
    """Build PipelineSettings from the current environment."""
    link_target = os.getenv("MAILBODY_LINK_TARGET", "").strip() or None

    return PipelineSettings(
        base64_min_length=_int_from_env("MAILBODY_BASE64_MIN_LENGTH", DEFAULT_BASE64_MIN_LENGTH),
        header_scan_lines=_int_from_env("MAILBODY_HEADER_SCAN_LINES", DEFAULT_HEADER_SCAN_LINES),
        max_html_length=_int_from_env("MAILBODY_MAX_HTML_LENGTH", DEFAULT_MAX_HTML_LENGTH, minimum=1),
        max_nesting_depth=_int_from_env("MAILBODY_MAX_NESTING_DEPTH", DEFAULT_MAX_NESTING_DEPTH, minimum=1),
        link_target=link_target,
        preview_length=_int_from_env("MAILBODY_PREVIEW_LENGTH", DEFAULT_PREVIEW_LENGTH, minimum=1),
    )
