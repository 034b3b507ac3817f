#!/usr/bin/env python3
"""
Dev helper: run a raw email body through the normalization pipeline.

Reads a body from a file (or stdin), sends it to the local Mailbody backend's
/api/email-body/normalize endpoint and prints the JSON result.  With --local
the pipeline runs in-process instead (requires `pip install -e .`).

Usage
-----
# Plain body saved from IMAP, auto-detected encodings
python scripts/render_email_body.py --file body.txt

# HTML part with a known transfer encoding
python scripts/render_email_body.py --file part.html --html --encoding quoted-printable

# Pipe from another tool, run in-process
cat body.b64 | python scripts/render_email_body.py --encoding base64 --local

# Also show the order/customer details the console would pre-fill
python scripts/render_email_body.py --file body.txt --extract --from jane.doe@example.com
"""

import argparse
import json
import sys
import textwrap
from pathlib import Path

import httpx


def _read_body(path: str | None) -> bytes:
    if path:
        return Path(path).read_bytes()
    return sys.stdin.buffer.read()


def _run_local(body: bytes, args: argparse.Namespace) -> dict:
    from mailbody.services.content_extractor import extract_email_details
    from mailbody.services.pipeline import build_preview, normalize_email_body

    output = normalize_email_body(body, is_html=args.html, transfer_encoding=args.encoding)
    if args.extract:
        details = extract_email_details(output, from_email=args.from_email, subject=args.subject)
        return details.model_dump()

    result = output.model_dump(mode="json")
    result["preview"] = build_preview(output)
    return result


def _run_remote(body: bytes, args: argparse.Namespace) -> dict:
    path = "/api/email-body/extract" if args.extract else "/api/email-body/normalize"
    endpoint = f"{args.url.rstrip('/')}{path}"
    payload = {
        "content": body.decode("utf-8", errors="replace"),
        "is_html": args.html,
        "transfer_encoding": args.encoding,
    }
    if args.extract:
        payload["from_email"] = args.from_email
        payload["subject"] = args.subject

    print(f"Endpoint  : {endpoint}", file=sys.stderr)
    response = httpx.post(endpoint, json=payload, timeout=30.0)
    response.raise_for_status()
    return response.json()


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="render_email_body.py",
        description="Run a raw email body through the Mailbody pipeline.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python scripts/render_email_body.py --file body.txt
              python scripts/render_email_body.py --file part.html --html
              cat body.b64 | python scripts/render_email_body.py --encoding base64 --local
        """),
    )
    parser.add_argument("--file", default=None, metavar="PATH", help="Body file (default: stdin)")
    parser.add_argument("--html", action="store_true", help="Flag the body as text/html")
    parser.add_argument(
        "--encoding",
        default=None,
        metavar="ENCODING",
        help="Content-Transfer-Encoding hint (base64, quoted-printable, 7bit, ...)",
    )
    parser.add_argument(
        "--url",
        default="http://localhost:8000",
        help="Backend base URL (default: http://localhost:8000)",
    )
    parser.add_argument("--local", action="store_true", help="Run the pipeline in-process")
    parser.add_argument("--extract", action="store_true", help="Print extracted order/customer details")
    parser.add_argument(
        "--from",
        dest="from_email",
        default="",
        help="Sender address used for the customer name fallback",
    )
    parser.add_argument("--subject", default=None, help="Subject line searched for order numbers")

    args = parser.parse_args()

    if args.file and not Path(args.file).exists():
        print(f"ERROR: File not found: {args.file}", file=sys.stderr)
        return 1

    body = _read_body(args.file)

    try:
        result = _run_local(body, args) if args.local else _run_remote(body, args)
    except httpx.HTTPError as exc:
        print(f"ERROR: request failed: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
