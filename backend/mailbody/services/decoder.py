"""
Email body decoder.

Reverses the transport encodings that survive on bodies fetched from
IMAP/Gmail-style backends and strips MIME envelope leftovers, producing clean
Unicode text.

Stages (each one is a no-op when it does not apply or when it fails):
  1. Base64              forced by the hint, or speculative auto-detection
  2. Quoted-Printable    forced by the hint, or triggered by typical =XX markers
  3. UTF-8 recovery      re-decode the source bytes when U+FFFD slipped in
  4. MIME header strip   drop a leading block of header / boundary lines
  5. Artifact strip      remove stray Content-* headers, charset="..." and
                           long boundary markers anywhere in the text
  6. Trim

decode_body() never raises on malformed content.
"""

import base64
import binascii
import codecs
import logging
import quopri
import re
from typing import Any, Optional, Tuple

from mailbody.config import PipelineSettings, get_settings
from mailbody.models.email_body import DecodedBody, TransferEncoding, parse_transfer_encoding

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_BASE64_ALPHABET_RE = re.compile(r"^[A-Za-z0-9+/=]+$")

# C0/C1 control characters other than tab, newline, vertical tab, form feed, CR
_CONTROL_CHAR_RE = re.compile(r"[\x00-\x08\x0e-\x1f\x7f-\x9f]")

_QP_MARKERS = ("=0A", "=C2", "=3D", "=20", "=E2")
_QP_SOFT_BREAK_RE = re.compile(r"=\r?\n")

# "Header-Name: value"
_HEADER_LINE_RE = re.compile(r"^[A-Za-z][A-Za-z0-9-]*:[ \t]+\S")

_ARTIFACT_PATTERNS = [
    re.compile(r"Content-Type:[^\n]*", re.IGNORECASE),
    re.compile(r"Content-Transfer-Encoding:[^\n]*", re.IGNORECASE),
    re.compile(r"Content-Disposition:[^\n]*", re.IGNORECASE),
    re.compile(r"Mime-Version:[^\n]*", re.IGNORECASE),
    re.compile(r'charset="[^"]*"', re.IGNORECASE),
    re.compile(r'boundary="[^"]*"', re.IGNORECASE),
    # Long multipart boundary markers, e.g. "--000000000000a1b2c3d4e5f6--"
    re.compile(r"--[A-Za-z0-9_-]{10,}[^\n]*"),
]


# ---------------------------------------------------------------------------
# Stage 1: Base64
# ---------------------------------------------------------------------------

def looks_like_base64(text: str, min_length: int = 50) -> bool:
    """
    Speculative Base64 detection.

    True when the text is longer than min_length, contains neither "=" nor
    "<", and is made only of Base64 alphabet characters once whitespace is
    removed.  Short alphanumeric plain text is deliberately never matched.
    """
    if len(text) <= min_length:
        return False
    if "=" in text or "<" in text:
        return False

    compact = _WHITESPACE_RE.sub("", text)
    return bool(compact) and _BASE64_ALPHABET_RE.match(compact) is not None


def _b64decode(text: str) -> bytes:
    compact = _WHITESPACE_RE.sub("", text)
    # Gmail API bodies use the URL-safe alphabet
    compact = compact.translate(str.maketrans("-_", "+/"))
    compact += "=" * (-len(compact) % 4)
    return base64.b64decode(compact, validate=True)


def _bytes_to_text(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


def _decode_base64(
    text: str,
    hint: Optional[TransferEncoding],
    min_length: int,
) -> Tuple[str, Optional[bytes]]:
    """Return (text, source_bytes); source_bytes is None when nothing was decoded."""
    if hint == TransferEncoding.BASE64:
        try:
            raw = _b64decode(text)
        except (binascii.Error, ValueError) as exc:
            logger.debug("base64 decode failed, keeping content as is: %s", exc)
            return text, None
        return _bytes_to_text(raw), raw

    if not looks_like_base64(text, min_length):
        return text, None

    try:
        raw = _b64decode(text)
        decoded = raw.decode("utf-8")
    except (binascii.Error, ValueError) as exc:
        logger.debug("speculative base64 decode rejected: %s", exc)
        return text, None

    if _CONTROL_CHAR_RE.search(decoded):
        logger.debug("speculative base64 decode rejected: result contains control characters")
        return text, None

    return decoded, raw


# ---------------------------------------------------------------------------
# Stage 2: Quoted-Printable
# ---------------------------------------------------------------------------

def needs_quoted_printable(text: str) -> bool:
    """True when the text carries typical =XX escapes or soft line breaks."""
    if any(marker in text for marker in _QP_MARKERS):
        return True
    return _QP_SOFT_BREAK_RE.search(text) is not None


def _decode_quoted_printable(
    text: str,
    hint: Optional[TransferEncoding],
) -> Tuple[str, Optional[bytes]]:
    if hint != TransferEncoding.QUOTED_PRINTABLE and not needs_quoted_printable(text):
        return text, None

    try:
        raw = quopri.decodestring(text.encode("utf-8"))
    except (binascii.Error, ValueError) as exc:
        logger.debug("quoted-printable decode failed, keeping content as is: %s", exc)
        return text, None
    return _bytes_to_text(raw), raw


# ---------------------------------------------------------------------------
# Stage 3: UTF-8 recovery
# ---------------------------------------------------------------------------

def recover_utf8(text: str, raw: Optional[bytes]) -> str:
    """
    Re-decode the bytes behind text when it contains U+FFFD.

    A body cut off in the middle of a multi-byte sequence decodes with a
    trailing replacement character; decoding incrementally without flushing
    drops the incomplete tail.  Anything else that is not strict UTF-8 leaves
    the text untouched.
    """
    if "\ufffd" not in text or raw is None:
        return text

    decoder = codecs.getincrementaldecoder("utf-8")()
    try:
        recovered = decoder.decode(raw, final=False)
    except UnicodeDecodeError as exc:
        logger.debug("utf-8 recovery failed, keeping replacement characters: %s", exc)
        return text
    return recovered


# ---------------------------------------------------------------------------
# Stages 4 and 5: MIME leftovers
# ---------------------------------------------------------------------------

def strip_mime_headers(text: str, scan_lines: int = 20) -> str:
    """
    Drop a leading block of MIME header lines.

    Scans at most scan_lines lines and advances past header lines, "--"
    boundary lines and blank lines, stopping at the first line that is none
    of these.  An indented (folded) line also stops the scan.

    Known false positive: a body that opens with something like
    "Subject: nothing special" loses that line.
    """
    lines = text.split("\n")
    cursor = 0

    for line in lines[:scan_lines]:
        stripped = line.strip()
        if stripped and not _HEADER_LINE_RE.match(line) and not stripped.startswith("--"):
            break
        cursor += 1

    if cursor == 0:
        return text

    logger.debug("strip_mime_headers: dropped %d leading line(s)", cursor)
    return "\n".join(lines[cursor:])


def strip_mime_artifacts(text: str) -> str:
    """Remove stray Content-* headers, charset/boundary fragments and boundary lines."""
    for pattern in _ARTIFACT_PATTERNS:
        text = pattern.sub("", text)
    return text


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def decode_body(
    content: Any,
    transfer_encoding: Any = None,
    settings: Optional[PipelineSettings] = None,
) -> DecodedBody:
    """
    Decode a raw email body into clean, trimmed Unicode text.

    Args:
        content: Body as bytes or str.  None and other types decode to "".
        transfer_encoding: Optional hint ("base64", "quoted-printable", ...).
        settings: Policy constants; read from the environment when omitted.

    Returns:
        DecodedBody whose text may be empty.
    """
    if settings is None:
        settings = get_settings()

    if content is None:
        return DecodedBody(text="")

    if isinstance(content, (bytes, bytearray)):
        raw = bytes(content)
    elif isinstance(content, str):
        raw = content.encode("utf-8", errors="surrogatepass")
    else:
        logger.warning("decode_body: unsupported content type %s", type(content).__name__)
        return DecodedBody(text="")

    hint = parse_transfer_encoding(transfer_encoding)
    text = _bytes_to_text(raw)

    text, stage_raw = _decode_base64(text, hint, settings.base64_min_length)
    if stage_raw is not None:
        raw = stage_raw

    text, stage_raw = _decode_quoted_printable(text, hint)
    if stage_raw is not None:
        raw = stage_raw

    text = recover_utf8(text, raw)
    text = strip_mime_headers(text, settings.header_scan_lines)
    text = strip_mime_artifacts(text)

    return DecodedBody(text=text.strip())
