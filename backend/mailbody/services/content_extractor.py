"""
Heuristic extraction of order and customer details from email text.

All extractors take decoded plain text (see extract_email_details for HTML
bodies), try their patterns in order and return the first match.  Patterns
cover the English and Dutch phrasing customers actually use.
"""

import logging
import re
from typing import Optional

from mailbody.models.email_body import ContentClassification, SanitizedOutput
from mailbody.models.extraction import CustomerInfo, ExtractedEmailDetails
from mailbody.services.sanitizer import html_to_text

logger = logging.getLogger(__name__)

DESCRIPTION_LENGTH = 500

_ORDER_NUMBER_PATTERNS = [
    re.compile(r"#(\d{4,})"),                                  # #12345
    re.compile(r"order[:\s#]+(\d{4,})", re.IGNORECASE),        # Order: 12345 / Order #12345
    re.compile(r"bestelling[:\s#]+(\d{4,})", re.IGNORECASE),   # Bestelling: 12345
    re.compile(r"ordernummer[:\s#]+(\d{4,})", re.IGNORECASE),  # Ordernummer: 12345
    re.compile(r"order\s+number[:\s#]+(\d{4,})", re.IGNORECASE),
]

_SIGNATURE_NAME_PATTERNS = [
    re.compile(
        r"met\s+vriendelijke\s+groet,?\s*\n\s*([A-Z][a-zäöüß]+(?:\s+[A-Z][a-zäöüß]+)+)",
        re.IGNORECASE,
    ),
    re.compile(r"best\s+regards,?\s*\n\s*([A-Z][a-z]+(?:\s+[A-Z][a-z]+)+)", re.IGNORECASE),
    re.compile(r"mvg,?\s*\n\s*([A-Z][a-z]+(?:\s+[A-Z][a-z]+)+)", re.IGNORECASE),
]

_PHONE_PATTERNS = [
    re.compile(r"(\+31\s?[0-9]{1,2}\s?[0-9]{7,8})"),           # +31 6 12345678
    re.compile(r"(\+31\s?\([0-9]{1,2}\)\s?[0-9]{7,8})"),       # +31 (6) 12345678
    re.compile(r"(0[0-9]{1,2}[\s-]?[0-9]{7,8})"),              # 06-12345678
    re.compile(r"tel[:\s]+(\+?[0-9\s()-]+)", re.IGNORECASE),
    re.compile(r"phone[:\s]+(\+?[0-9\s()-]+)", re.IGNORECASE),
]

_ADDRESS_PATTERNS = [
    # Street 12a, 1234 AB City
    re.compile(
        r"([A-Z][a-zäöüß]+(?:\s+[A-Z][a-zäöüß]+)*\s+\d+[a-z]?,?\s+\d{4}\s?[A-Z]{2}\s+[A-Z][a-zäöüß]+)",
        re.IGNORECASE,
    ),
    re.compile(r"adres[:\s]+(.+?(?:\d{4}\s?[A-Z]{2}))", re.IGNORECASE),
]

_PRODUCT_PATTERNS = [
    re.compile(r"product[:\s]+(.+?)(?:\n|$)", re.IGNORECASE),
    re.compile(r"artikel[:\s]+(.+?)(?:\n|$)", re.IGNORECASE),
    re.compile(r"item[:\s]+(.+?)(?:\n|$)", re.IGNORECASE),
]

_LOCAL_PART_SEPARATOR_RE = re.compile(r"[._-]")


def _first_match(patterns, text: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match and match.group(1):
            return match.group(1).strip()
    return None


def extract_order_number(content: Optional[str]) -> Optional[str]:
    """
    Examples:
        "Re: #12345 arrived broken"    -> "12345"
        "Order number: 998877"          -> "998877"
        "Bestelling 20240"              -> "20240"
        "Order 12"                      -> None  (fewer than 4 digits)
    """
    if not content:
        return None
    return _first_match(_ORDER_NUMBER_PATTERNS, content)


def extract_customer_name(email_body: Optional[str], from_email: str) -> Optional[str]:
    """
    Name from the signature, else derived from the sender's address.

    Examples:
        "...Best regards,\\nJane Doe"        -> "Jane Doe"
        no signature, "jan.de-vries@x.nl"   -> "Jan De Vries"
    """
    if email_body:
        name = _first_match(_SIGNATURE_NAME_PATTERNS, email_body)
        if name:
            return name

    username = (from_email or "").split("@")[0]
    if not username:
        return None

    return " ".join(
        part[:1].upper() + part[1:]
        for part in _LOCAL_PART_SEPARATOR_RE.split(username)
    )


def extract_phone_number(content: Optional[str]) -> Optional[str]:
    if not content:
        return None
    return _first_match(_PHONE_PATTERNS, content)


def extract_address(content: Optional[str]) -> Optional[str]:
    if not content:
        return None
    return _first_match(_ADDRESS_PATTERNS, content)


def extract_product_info(content: Optional[str]) -> Optional[str]:
    if not content:
        return None
    return _first_match(_PRODUCT_PATTERNS, content)


def extract_customer_info(email_body: Optional[str], from_email: str) -> CustomerInfo:
    return CustomerInfo(
        name=extract_customer_name(email_body, from_email),
        phone=extract_phone_number(email_body),
        address=extract_address(email_body),
    )


def extract_email_details(
    output: SanitizedOutput,
    from_email: str = "",
    subject: Optional[str] = None,
) -> ExtractedEmailDetails:
    """
    Run every extractor over a pipeline result.

    HTML payloads are converted to text first.  The order number is also
    searched for in the subject line, which is where customers usually put it.
    """
    text = ""
    if output.available:
        if output.kind == ContentClassification.HTML:
            text = html_to_text(output.payload).strip()
        else:
            text = output.payload

    order_number = extract_order_number(f"{text} {subject or ''}")
    logger.debug("extract_email_details: order_number=%r", order_number)

    return ExtractedEmailDetails(
        order_number=order_number,
        customer=extract_customer_info(text, from_email),
        product=extract_product_info(text),
        description=text[:DESCRIPTION_LENGTH],
    )
