"""
Decides whether decoded body text is presented as HTML or plain text.
"""

import logging
from typing import Optional

from mailbody.models.email_body import ContentClassification

logger = logging.getLogger(__name__)

# Checked in order, case-sensitive; the first hit wins
HTML_MARKERS = ("<!DOCTYPE", "<html", "<body", "<div", "<p>", "<table>")


def find_html_marker(text: str) -> Optional[str]:
    """
    Return the first HTML marker found in text, or None.

    Examples:
        "<!DOCTYPE html><html>..."  -> "<!DOCTYPE"
        "see <table> below"          -> "<table>"
        "<P>shouting</P>"            -> None  (markers are case-sensitive)
    """
    if not text:
        return None

    for marker in HTML_MARKERS:
        if marker in text:
            return marker
    return None


def classify_content(text: str, is_html: bool = False) -> ContentClassification:
    """
    HTML when the caller says so, or when the decoded text carries an HTML
    marker even though the caller did not flag it.
    """
    if is_html:
        return ContentClassification.HTML

    marker = find_html_marker(text)
    if marker is not None:
        logger.debug("classify_content: %r marker overrides is_html=False", marker)
        return ContentClassification.HTML

    return ContentClassification.PLAIN_TEXT
