"""
Email body API endpoints.

Every console view that shows an email (thread view, drawer, case detail)
calls these instead of decoding or sanitizing bodies client-side.

Endpoints:
  POST /normalize  decode + classify + sanitize one body, with a preview line
  POST /extract    same pipeline, then pull order/customer details for forms

Malformed bodies never produce an error response: they come back as
status "no_content" or "undisplayable".  Only a malformed request shape is
rejected (422, by FastAPI validation).
"""

import logging

from fastapi import APIRouter

from mailbody.config import get_settings
from mailbody.models.email_body import NormalizeRequest, NormalizeResponse
from mailbody.models.extraction import ExtractedEmailDetails, ExtractRequest
from mailbody.services.content_extractor import extract_email_details
from mailbody.services.pipeline import build_preview, normalize_email_body

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/normalize",
    response_model=NormalizeResponse,
    responses={
        200: {
            "description": "Render-ready body",
            "content": {
                "application/json": {
                    "example": {
                        "kind": "html",
                        "payload": "<p>Hi there</p>",
                        "status": "ok",
                        "available": True,
                        "preview": "Hi there",
                    }
                }
            },
        },
    },
)
def normalize_body(request: NormalizeRequest):
    """
    Normalize a raw email body for rendering.

    kind "plain_text" payloads are rendered verbatim (pre-wrap); kind "html"
    payloads are already sanitized and may be inserted directly.
    """
    settings = get_settings()
    output = normalize_email_body(
        request.content,
        is_html=request.is_html,
        transfer_encoding=request.transfer_encoding,
        settings=settings,
    )
    logger.info(
        "Normalized email body: kind=%s status=%s payload_length=%d",
        output.kind.value,
        output.status.value,
        len(output.payload),
    )

    return NormalizeResponse(
        kind=output.kind,
        payload=output.payload,
        status=output.status,
        preview=build_preview(output, max_length=settings.preview_length),
    )


@router.post("/extract", response_model=ExtractedEmailDetails)
def extract_details(request: ExtractRequest):
    """
    Pre-fill data for creating a case, repair or return from an email.

    The body goes through the same pipeline as /normalize first, so encoded
    and HTML bodies are handled identically.
    """
    output = normalize_email_body(
        request.content,
        is_html=request.is_html,
        transfer_encoding=request.transfer_encoding,
    )
    return extract_email_details(output, from_email=request.from_email, subject=request.subject)
