"""
Pydantic models for the email body normalization pipeline.

Models:
  TransferEncoding         optional out-of-band encoding hint from message headers
  RawEmailBody             body as delivered by the email-fetch layer
  DecodedBody              transient decoder output
  ContentClassification    plain_text vs html presentation
  BodyStatus               ok / no_content / undisplayable
  SanitizedOutput          terminal, render-ready value handed to the UI
"""

import logging
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, computed_field, field_validator

logger = logging.getLogger(__name__)


class TransferEncoding(str, Enum):
    BASE64 = "base64"
    QUOTED_PRINTABLE = "quoted_printable"
    NONE = "none"


# Header spellings seen in Content-Transfer-Encoding values
_TRANSFER_ENCODING_ALIASES = {
    "base64": TransferEncoding.BASE64,
    "b64": TransferEncoding.BASE64,
    "quoted_printable": TransferEncoding.QUOTED_PRINTABLE,
    "quoted-printable": TransferEncoding.QUOTED_PRINTABLE,
    "qp": TransferEncoding.QUOTED_PRINTABLE,
    "none": TransferEncoding.NONE,
    "7bit": TransferEncoding.NONE,
    "8bit": TransferEncoding.NONE,
    "binary": TransferEncoding.NONE,
    "": TransferEncoding.NONE,
}


def parse_transfer_encoding(value: Any) -> Optional[TransferEncoding]:
    """
    Map a raw transfer-encoding hint to a TransferEncoding.

    Examples:
        "BASE64"            -> TransferEncoding.BASE64
        "Quoted-Printable"  -> TransferEncoding.QUOTED_PRINTABLE
        "7bit"              -> TransferEncoding.NONE
        None                -> None
        "x-uuencode"        -> TransferEncoding.NONE  (unknown, logged)
    """
    if value is None:
        return None

    if isinstance(value, TransferEncoding):
        return value

    if not isinstance(value, str):
        logger.debug("parse_transfer_encoding: ignoring non-string hint %r", value)
        return TransferEncoding.NONE

    resolved = _TRANSFER_ENCODING_ALIASES.get(value.strip().lower())
    if resolved is None:
        logger.debug("parse_transfer_encoding: unknown hint %r treated as none", value)
        return TransferEncoding.NONE
    return resolved


class ContentClassification(str, Enum):
    PLAIN_TEXT = "plain_text"
    HTML = "html"


class BodyStatus(str, Enum):
    OK = "ok"
    NO_CONTENT = "no_content"
    UNDISPLAYABLE = "undisplayable"


class RawEmailBody(BaseModel):
    """
    Email body as handed over by the email-fetch collaborator.

    The collaborator does not pre-decode anything; content may still carry
    Base64 / quoted-printable transport encoding and MIME leftovers.
    """

    model_config = {"frozen": True}

    content: Union[bytes, str, None] = None
    is_html: bool = False
    transfer_encoding: Optional[TransferEncoding] = None

    @field_validator("transfer_encoding", mode="before")
    @classmethod
    def coerce_transfer_encoding(cls, v: Any) -> Optional[TransferEncoding]:
        """Accept header spellings such as "Quoted-Printable" or "7bit"."""
        return parse_transfer_encoding(v)


class DecodedBody(BaseModel):
    """Decoder output: clean Unicode text, already trimmed."""

    model_config = {"frozen": True}

    text: str = ""


class SanitizedOutput(BaseModel):
    """
    Render-ready result of one pipeline invocation.

    kind=plain_text  payload is the decoded text verbatim (render pre-wrap)
    kind=html        payload holds only allow-listed tags and attributes

    When status is not "ok" the payload is always empty:
      no_content     nothing to show (absent / empty body)
      undisplayable  HTML sanitization reduced the body to nothing
    """

    model_config = {"frozen": True}

    kind: ContentClassification
    payload: str = ""
    status: BodyStatus = BodyStatus.OK

    @computed_field  # type: ignore[misc]
    @property
    def available(self) -> bool:
        return self.status == BodyStatus.OK

    @classmethod
    def no_content(cls) -> "SanitizedOutput":
        return cls(kind=ContentClassification.PLAIN_TEXT, status=BodyStatus.NO_CONTENT)

    @classmethod
    def undisplayable(cls) -> "SanitizedOutput":
        return cls(kind=ContentClassification.HTML, status=BodyStatus.UNDISPLAYABLE)


# ---------------------------------------------------------------------------
# API request / response bodies
# ---------------------------------------------------------------------------

class NormalizeRequest(BaseModel):
    """POST /api/email-body/normalize request body."""

    model_config = {"extra": "ignore"}

    content: Optional[str] = None
    is_html: bool = False
    transfer_encoding: Optional[str] = None


class NormalizeResponse(SanitizedOutput):
    """SanitizedOutput plus the one-line preview for collapsed messages."""

    preview: str
