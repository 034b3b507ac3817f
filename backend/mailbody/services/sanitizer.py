"""
Allow-list HTML sanitizer for email bodies.

Reduces arbitrary (often hostile) email HTML to a small renderable subset
before it is handed to a template for direct insertion.  The allow-lists
below are the only trust boundary: the caller's is_html flag is never
trusted on its own.

Pre-processing (before the allow-list filter):
  - <style> blocks are removed together with their content
  - style="..." and class="..." attributes are removed
  - literal &nbsp; entities become plain spaces

Allow-list filter:
  - tags outside ALLOWED_TAGS are unwrapped (their text is kept), except the
    DROP_CONTENT_TAGS containers, which go away with everything inside them
  - attributes outside ALLOWED_ATTRIBUTES are dropped
  - href/src values with a scripting or otherwise unknown URL scheme are dropped
  - comments, doctypes, CDATA and processing instructions are dropped

sanitize_html() never raises and is idempotent:
    sanitize_html(sanitize_html(html)) == sanitize_html(html)
"""

import logging
import re
from typing import Optional

from bs4 import BeautifulSoup
from bs4.element import (
    CData,
    Comment,
    Declaration,
    Doctype,
    NavigableString,
    ProcessingInstruction,
    Tag,
)
from bs4.formatter import HTMLFormatter

from mailbody.config import PipelineSettings, get_settings

logger = logging.getLogger(__name__)

ALLOWED_TAGS = frozenset({
    "p", "br", "strong", "em", "u",
    "h1", "h2", "h3", "h4", "h5", "h6",
    "ul", "ol", "li", "a", "img", "div", "span",
    "table", "thead", "tbody", "tr", "td", "th",
    "blockquote", "code", "pre", "hr", "b", "i", "font",
})

ALLOWED_ATTRIBUTES = frozenset({
    "href", "src", "alt", "title", "target", "rel", "width", "height",
})

# Removed together with their content instead of being unwrapped
DROP_CONTENT_TAGS = frozenset({
    "script", "style", "head", "title", "meta", "link", "base",
    "iframe", "frame", "frameset", "object", "embed", "applet",
    "noscript", "noembed", "noframes", "template",
    "svg", "math", "xmp", "plaintext",
})

# Stripped in the pre-processing step, before the allow-list is applied
PREPROCESS_ATTRIBUTES = ("style", "class")

SAFE_LINK_REL = "noopener noreferrer"

# Whitespace-only text inside these is kept verbatim by the parser
PRESERVE_WHITESPACE_TAGS = frozenset({"pre", "textarea"})

MAX_SANITIZE_PASSES = 3

_URL_ATTRIBUTES = frozenset({"href", "src"})
_SAFE_URL_SCHEMES = frozenset({"http", "https", "mailto", "tel", "cid", "ftp"})

# Browsers ignore whitespace and control characters inside a scheme ("java\tscript:")
_URL_IGNORED_CHARS_RE = re.compile(r"[\x00-\x20\x7f]+")
_URL_SCHEME_RE = re.compile(r"^([a-z][a-z0-9+.\-]*):")

_SPECIAL_STRINGS = (Comment, CData, ProcessingInstruction, Declaration, Doctype)

# Characters html.parser treats as collapsible whitespace
_PARSER_SPACES = " \n\t\x0c\r"


def _escape(value: str) -> str:
    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#39;")
    )


# Quotes are escaped too, so serialized text can never look like markup
# or an attribute assignment when it is parsed again.
_FORMATTER = HTMLFormatter(entity_substitution=_escape)


def is_safe_url(value: str, allow_data_image: bool = False) -> bool:
    """
    True when an href/src value may be kept.

    Relative URLs and http(s)/mailto/tel/cid/ftp URLs are safe.  data: URLs
    are only accepted for images (allow_data_image=True), and never for SVG.

    Examples:
        "https://example.com"        -> True
        "/orders/1234"               -> True
        "javascript:alert(1)"        -> False
        " JaVa\\tScRiPt:alert(1)"     -> False
        "data:image/png;base64,..."  -> True only with allow_data_image
    """
    normalized = _URL_IGNORED_CHARS_RE.sub("", value or "").lower()
    match = _URL_SCHEME_RE.match(normalized)
    if not match:
        return True

    scheme = match.group(1)
    if scheme in _SAFE_URL_SCHEMES:
        return True
    if scheme == "data" and allow_data_image:
        return normalized.startswith("data:image/") and not normalized.startswith("data:image/svg")
    return False


def _filter_attributes(tag: Tag, link_target: Optional[str]) -> None:
    kept = {}
    for name, value in tag.attrs.items():
        name = name.lower()
        if name not in ALLOWED_ATTRIBUTES:
            continue
        # rel is parsed as a multi-valued attribute
        if isinstance(value, list):
            value = " ".join(value)
        if value is None:
            value = ""
        if name in _URL_ATTRIBUTES and not is_safe_url(value, allow_data_image=(name == "src")):
            logger.debug("dropping unsafe %s=%r on <%s>", name, value, tag.name)
            continue
        kept[name] = value

    if tag.name == "a" and link_target:
        kept["target"] = link_target
        kept["rel"] = SAFE_LINK_REL

    tag.attrs = kept


def _preprocess(soup: BeautifulSoup) -> None:
    """Drop <style> blocks and style/class attributes."""
    for style in soup.find_all("style"):
        style.decompose()

    for tag in soup.find_all(True):
        for name in PREPROCESS_ATTRIBUTES:
            if name in tag.attrs:
                del tag.attrs[name]


def _drop_inert_nodes(soup: BeautifulSoup) -> None:
    """Drop comments/doctypes (empty ones too) and the DROP_CONTENT_TAGS containers."""
    # Runs before the depth cap, so both walks stay linear in the number of nodes
    for node in list(soup.descendants):
        if isinstance(node, _SPECIAL_STRINGS):
            node.extract()

    for node in list(soup.descendants):
        if isinstance(node, Tag) and not node.decomposed and node.name in DROP_CONTENT_TAGS:
            node.decompose()


def _flatten_deep_elements(soup: BeautifulSoup, max_depth: int) -> int:
    """Replace elements nested deeper than max_depth by their text."""
    flattened = 0
    stack = [(child, 1) for child in soup.contents if isinstance(child, Tag)]
    while stack:
        tag, depth = stack.pop()
        if depth > max_depth:
            tag.replace_with(NavigableString(tag.get_text()))
            flattened += 1
            continue
        stack.extend((child, depth + 1) for child in tag.contents if isinstance(child, Tag))
    return flattened


def _apply_allow_list(soup: BeautifulSoup, link_target: Optional[str]) -> None:
    for tag in soup.find_all(True):
        if tag.decomposed:
            continue
        if tag.name not in ALLOWED_TAGS:
            tag.unwrap()
            continue
        _filter_attributes(tag, link_target)


def _collapse_blank_strings(soup: BeautifulSoup) -> None:
    """
    Merge adjacent strings and collapse whitespace-only ones to " " or "\\n",
    which is what html.parser does with them on the next parse.
    """
    soup.smooth()
    for node in list(soup.descendants):
        if not isinstance(node, NavigableString) or not node:
            continue
        if node.strip(_PARSER_SPACES):
            continue
        if any(parent.name in PRESERVE_WHITESPACE_TAGS for parent in node.parents):
            continue
        collapsed = "\n" if "\n" in node else " "
        if node != collapsed:
            node.replace_with(collapsed)


def _sanitize_pass(html: str, link_target: Optional[str], max_depth: int) -> str:
    soup = BeautifulSoup(html, "html.parser")
    _preprocess(soup)
    _drop_inert_nodes(soup)
    flattened = _flatten_deep_elements(soup, max_depth)
    if flattened:
        logger.warning(
            "sanitize_html: flattened %d element(s) nested deeper than %d",
            flattened,
            max_depth,
        )
    _apply_allow_list(soup, link_target)
    _collapse_blank_strings(soup)
    return soup.decode(formatter=_FORMATTER).strip()


def sanitize_html(
    html: str,
    link_target: Optional[str] = None,
    settings: Optional[PipelineSettings] = None,
) -> str:
    """
    Reduce HTML to the allow-listed subset.

    The result is parsed and filtered again until it no longer changes (at
    most MAX_SANITIZE_PASSES times), so sanitized output is a fixed point.

    Args:
        html: Untrusted HTML fragment or document.
        link_target: When given (e.g. "_blank"), every anchor gets this
            target plus rel="noopener noreferrer".
        settings: Size/depth caps; read from the environment when omitted.

    Returns:
        The sanitized, trimmed fragment.  An empty string means nothing
        displayable survived (or the input could not be parsed at all).
    """
    if not html or not isinstance(html, str):
        return ""

    if settings is None:
        settings = get_settings()

    if len(html) > settings.max_html_length:
        logger.warning(
            "sanitize_html: truncating %d characters of HTML to %d",
            len(html),
            settings.max_html_length,
        )
        html = html[: settings.max_html_length]

    html = html.replace("&nbsp;", " ")

    try:
        result = _sanitize_pass(html, link_target, settings.max_nesting_depth)
        for _ in range(MAX_SANITIZE_PASSES - 1):
            again = _sanitize_pass(result, link_target, settings.max_nesting_depth)
            if again == result:
                break
            result = again
        else:
            logger.warning("sanitize_html: output still changing after %d passes", MAX_SANITIZE_PASSES)
        return result
    except Exception as exc:
        logger.warning("sanitize_html: could not sanitize HTML, dropping it: %s", exc)
        return ""


def html_to_text(html: str) -> str:
    """
    Visible text of an HTML fragment, keeping line structure.

    <br> becomes a newline, </p> a blank line and </div> a newline; scripts,
    styles and other DROP_CONTENT_TAGS are discarded.
    """
    if not html:
        return ""

    try:
        soup = BeautifulSoup(html, "html.parser")
        _drop_inert_nodes(soup)
        for br in soup.find_all("br"):
            br.replace_with("\n")
        for tag in soup.find_all(["p", "div"]):
            tag.append("\n\n" if tag.name == "p" else "\n")
        return soup.get_text()
    except Exception as exc:
        logger.warning("html_to_text: could not parse HTML: %s", exc)
        return ""
