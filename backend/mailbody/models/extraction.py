"""
Pydantic models for data pulled out of decoded email bodies.

Used by the console's "create case / repair / return from email" actions to
pre-fill forms.  Every field is a best-effort guess and may be None.
"""

from typing import Optional
from pydantic import BaseModel


class CustomerInfo(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class ExtractedEmailDetails(BaseModel):
    """Everything the extractor could find in one email."""

    order_number: Optional[str] = None
    customer: CustomerInfo = CustomerInfo()
    product: Optional[str] = None
    description: str = ""   # first DESCRIPTION_LENGTH characters of the body text


class ExtractRequest(BaseModel):
    """POST /api/email-body/extract request body."""

    model_config = {"extra": "ignore"}

    content: Optional[str] = None
    is_html: bool = False
    transfer_encoding: Optional[str] = None
    from_email: str = ""
    subject: Optional[str] = None
