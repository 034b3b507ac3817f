"""
Email body normalization pipeline.

Single shared entry point for every place that renders an email body:

    raw body -> decode_body -> classify_content -> sanitize_html (HTML only)
             -> SanitizedOutput

The result is tagged so the renderer never decodes or filters anything
itself: plain_text payloads are shown verbatim (pre-wrap), html payloads are
inserted directly, and a non-"ok" status is shown as an empty state.

    no_content      the body is absent, could not be decoded or decodes to nothing
    undisplayable   the body was HTML and nothing survived sanitization

No exception raised while decoding or sanitizing reaches the caller.
"""

import html
import logging
import re
from typing import Any, Optional

from mailbody.config import PipelineSettings, get_settings
from mailbody.models.email_body import (
    ContentClassification,
    RawEmailBody,
    SanitizedOutput,
)
from mailbody.services.classifier import classify_content
from mailbody.services.decoder import decode_body
from mailbody.services.sanitizer import sanitize_html

logger = logging.getLogger(__name__)

NO_CONTENT_PREVIEW = "(No content)"

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_email_body(
    content: Any,
    is_html: bool = False,
    transfer_encoding: Any = None,
    settings: Optional[PipelineSettings] = None,
) -> SanitizedOutput:
    """
    Decode, classify and (for HTML) sanitize one email body.

    Args:
        content: Raw body as bytes or str, exactly as fetched.
        is_html: Caller's HTML flag (e.g. the part was text/html).  HTML
            markers in the decoded text also select the HTML path.
        transfer_encoding: Optional Content-Transfer-Encoding hint.
        settings: Policy constants; read from the environment when omitted.

    Returns:
        SanitizedOutput.  Deterministic for identical input.
    """
    if settings is None:
        settings = get_settings()

    if content is None:
        return SanitizedOutput.no_content()

    if not isinstance(content, (str, bytes, bytearray)):
        logger.warning("normalize_email_body: unsupported body type %s", type(content).__name__)
        return SanitizedOutput.no_content()

    try:
        decoded = decode_body(content, transfer_encoding, settings=settings)
    except Exception:
        logger.exception("normalize_email_body: unexpected decode failure, body has no content")
        return SanitizedOutput.no_content()

    if not decoded.text:
        return SanitizedOutput.no_content()

    try:
        kind = classify_content(decoded.text, is_html=is_html)
        if kind == ContentClassification.PLAIN_TEXT:
            return SanitizedOutput(kind=kind, payload=decoded.text)

        payload = sanitize_html(decoded.text, link_target=settings.link_target, settings=settings)
    except Exception:
        logger.exception("normalize_email_body: unexpected failure, body marked undisplayable")
        return SanitizedOutput.undisplayable()

    if not payload.strip():
        logger.warning(
            "normalize_email_body: sanitization left nothing of %d characters of HTML",
            len(decoded.text),
        )
        return SanitizedOutput.undisplayable()

    return SanitizedOutput(kind=ContentClassification.HTML, payload=payload)


def render_email_body(
    body: RawEmailBody,
    settings: Optional[PipelineSettings] = None,
) -> SanitizedOutput:
    """Model-based variant of normalize_email_body."""
    return normalize_email_body(
        body.content,
        is_html=body.is_html,
        transfer_encoding=body.transfer_encoding,
        settings=settings,
    )


def build_preview(output: SanitizedOutput, max_length: int = 100) -> str:
    """
    One-line preview for a collapsed message.

    Tags are replaced by spaces, whitespace is collapsed, and the text is cut
    at max_length characters with a trailing "...".

    Examples:
        plain "Hello\\n\\nworld"          -> "Hello world"
        html  "<p>Fish &amp; chips</p>"  -> "Fish & chips"
        no_content / undisplayable       -> "(No content)"
    """
    if not output.available:
        return NO_CONTENT_PREVIEW

    text = output.payload
    if output.kind == ContentClassification.HTML:
        text = html.unescape(_TAG_RE.sub(" ", text))

    text = _WHITESPACE_RE.sub(" ", text).strip()
    if not text:
        return NO_CONTENT_PREVIEW

    if len(text) > max_length:
        return text[:max_length] + "..."
    return text
