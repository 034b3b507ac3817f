"""
Unit tests for the email body decoder.

Covers each decoding stage on its own (Base64, quoted-printable, UTF-8
recovery, MIME header strip, artifact strip) and decode_body end to end,
including the guarantee that malformed input never raises.
"""

import base64
import quopri

import pytest

from mailbody.config import PipelineSettings
from mailbody.models.email_body import DecodedBody, TransferEncoding
from mailbody.services.decoder import (
    decode_body,
    looks_like_base64,
    needs_quoted_printable,
    recover_utf8,
    strip_mime_artifacts,
    strip_mime_headers,
)


def _b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _padded(text: str) -> str:
    """Pad text with dots to a multiple of 3 bytes so its Base64 has no '='."""
    return text + "." * (-len(text.encode("utf-8")) % 3)


# ---------------------------------------------------------------------------
# Base64 stage
# ---------------------------------------------------------------------------

class TestBase64Stage:
    """Hinted and speculative Base64 decoding."""

    def test_hinted_base64_decodes(self):
        assert decode_body("SGVsbG8gd29ybGQ=", TransferEncoding.BASE64).text == "Hello world"

    def test_hint_accepts_header_spelling(self):
        assert decode_body("SGVsbG8gd29ybGQ=", "BASE64").text == "Hello world"

    def test_hinted_base64_ignores_line_wrapping(self):
        encoded = _b64("Your repair has been completed and is ready for pickup.")
        wrapped = "\r\n".join(encoded[i:i + 20] for i in range(0, len(encoded), 20))
        result = decode_body(wrapped, "base64")
        assert result.text == "Your repair has been completed and is ready for pickup."

    def test_hinted_base64_restores_missing_padding(self):
        assert decode_body("SGVsbG8gd29ybGQ", "base64").text == "Hello world"

    def test_hinted_urlsafe_base64(self):
        text = "Grüße aus Köln? Ja >>> natürlich!"
        encoded = base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii")
        assert decode_body(encoded, "base64").text == text

    def test_hinted_base64_failure_leaves_content_unchanged(self):
        assert decode_body("!!!not base64!!!", "base64").text == "!!!not base64!!!"

    def test_hinted_base64_impossible_length_leaves_content_unchanged(self):
        assert decode_body("abcde", "base64").text == "abcde"

    def test_autodetects_long_base64_without_hint(self):
        plain = _padded("Your parcel has shipped and will arrive within three working days")
        encoded = _b64(plain)
        assert "=" not in encoded
        assert decode_body(encoded).text == plain

    def test_autodetect_skips_short_content(self):
        """Short alphanumeric text must never be mistaken for Base64."""
        assert decode_body("SGVsbG8gd29ybGQ").text == "SGVsbG8gd29ybGQ"

    def test_autodetect_rejects_binary_result(self):
        """'aaaa...' is valid Base64 but decodes to non-UTF-8 bytes."""
        content = "a" * 60
        assert decode_body(content).text == content

    def test_autodetect_skips_content_with_padding(self):
        # 59 bytes, so the encoding ends in "="
        encoded = _b64("Please confirm the pickup date for the repaired camera body")
        assert encoded.endswith("=")
        assert decode_body(encoded).text == encoded

    @pytest.mark.parametrize(
        "plain, decoded",
        [
            # 36 bytes -> 48 Base64 characters: at or below the threshold
            ("Please send the invoice to me today.", False),
            # 39 bytes -> 52 Base64 characters: above the threshold
            ("Please send the invoice to me today!!!!", True),
        ],
    )
    def test_autodetect_length_threshold(self, plain, decoded):
        encoded = _b64(plain)
        assert "=" not in encoded
        expected = plain if decoded else encoded
        assert decode_body(encoded).text == expected

    def test_threshold_is_configurable(self):
        settings = PipelineSettings(base64_min_length=10)
        encoded = _b64("Please send the invoice to me today.")
        assert decode_body(encoded, settings=settings).text == "Please send the invoice to me today."


class TestLooksLikeBase64:
    def test_rejects_text_with_angle_bracket(self):
        assert looks_like_base64("<" + "A" * 60) is False

    def test_rejects_text_with_equals(self):
        assert looks_like_base64("A" * 60 + "=") is False

    def test_rejects_spaces_in_prose(self):
        assert looks_like_base64("this is a perfectly normal sentence, with a comma in it") is False

    def test_accepts_whitespace_wrapped_alphabet(self):
        assert looks_like_base64("QUJD" * 10 + "\n" + "REVG" * 10) is True

    def test_rejects_exactly_min_length(self):
        assert looks_like_base64("A" * 50) is False
        assert looks_like_base64("A" * 51) is True


# ---------------------------------------------------------------------------
# Quoted-printable stage
# ---------------------------------------------------------------------------

class TestQuotedPrintableStage:
    """Hinted and marker-triggered quoted-printable decoding."""

    def test_hinted_qp_decodes_utf8(self):
        assert decode_body("Caf=C3=A9 visit", "quoted_printable").text == "Café visit"

    def test_hint_alias_with_dash(self):
        assert decode_body("Caf=C3=A9 visit", "quoted-printable").text == "Café visit"

    def test_markers_trigger_decode_without_hint(self):
        assert decode_body("Hello=20world=0AGoodbye").text == "Hello world\nGoodbye"

    def test_soft_line_break_triggers_decode(self):
        assert decode_body("This is a long line that=\nwraps").text == "This is a long line thatwraps"

    def test_soft_line_break_with_crlf(self):
        assert decode_body("This is a long line that=\r\nwraps").text == "This is a long line thatwraps"

    def test_plain_equals_sign_is_left_alone(self):
        assert decode_body("2+2=4 and a=b").text == "2+2=4 and a=b"

    def test_invalid_escape_is_kept(self):
        assert decode_body("100=ZZ", "quoted_printable").text == "100=ZZ"

    @pytest.mark.parametrize(
        "text",
        [
            "Hello world",
            "Price = 10 EUR",
            "Café crème brûlée",
            "naïve “quotes” and € signs",
            "first line\nsecond line",
        ],
    )
    def test_round_trip(self, text):
        encoded = quopri.encodestring(text.encode("utf-8")).decode("ascii")
        assert decode_body(encoded, "quoted_printable").text == text


class TestNeedsQuotedPrintable:
    @pytest.mark.parametrize("marker", ["=0A", "=C2", "=3D", "=20", "=E2"])
    def test_markers(self, marker):
        assert needs_quoted_printable(f"abc{marker}def") is True

    def test_lowercase_escape_is_not_a_marker(self):
        assert needs_quoted_printable("abc=c2def") is False

    def test_no_markers(self):
        assert needs_quoted_printable("a=b") is False


# ---------------------------------------------------------------------------
# UTF-8 recovery
# ---------------------------------------------------------------------------

class TestUtf8Recovery:
    def test_truncated_multibyte_tail_is_dropped(self):
        raw = "Café ☕".encode("utf-8")[:-1]
        result = decode_body(raw)
        assert "\ufffd" not in result.text
        assert result.text == "Café"

    def test_invalid_bytes_in_the_middle_keep_replacement(self):
        result = decode_body(b"Caf\xe9 ok")
        assert result.text == "Caf\ufffd ok"

    def test_recover_without_replacement_is_noop(self):
        assert recover_utf8("plain", b"other") == "plain"

    def test_recover_without_bytes_is_noop(self):
        assert recover_utf8("bad \ufffd", None) == "bad \ufffd"

    def test_truncated_base64_payload_recovers(self):
        encoded = base64.b64encode("Totaal 20 €".encode("utf-8")[:-1]).decode("ascii")
        assert decode_body(encoded, "base64").text == "Totaal 20"


# ---------------------------------------------------------------------------
# MIME header strip
# ---------------------------------------------------------------------------

class TestStripMimeHeaders:
    def test_strips_leading_headers_and_blank_line(self):
        text = (
            "Content-Type: text/plain; charset=utf-8\n"
            "Content-Transfer-Encoding: 7bit\n"
            "\n"
            "Hello Jane,\n"
            "Your order shipped."
        )
        assert strip_mime_headers(text) == "Hello Jane,\nYour order shipped."

    def test_strips_boundary_line(self):
        text = "--boundary123\nContent-Type: text/plain\n\nBody text"
        assert strip_mime_headers(text) == "Body text"

    def test_folded_line_stops_the_scan(self):
        text = 'Content-Type: multipart/alternative;\n\tboundary="abc"\n\nHi'
        assert strip_mime_headers(text) == '\tboundary="abc"\n\nHi'

    def test_indented_paragraph_after_header_like_line_is_kept(self):
        text = "Note: see below\n    Hello world, the repair is done."
        assert strip_mime_headers(text) == "    Hello world, the repair is done."

    def test_leaves_regular_body_alone(self):
        text = "Hi Jane,\nContent follows below."
        assert strip_mime_headers(text) == text

    def test_url_on_first_line_is_not_a_header(self):
        text = "https://example.com/track/123\nYour parcel"
        assert strip_mime_headers(text) == text

    def test_known_false_positive_on_header_like_first_line(self):
        """A quoted 'Subject: ...' line at the top is indistinguishable from a header."""
        assert strip_mime_headers("Subject: nothing special\nSee below") == "See below"

    def test_scan_window_is_limited(self):
        lines = [f"X-Header-{i}: value" for i in range(25)]
        text = "\n".join(lines + ["", "Body"])
        result = strip_mime_headers(text, scan_lines=20)
        assert result.startswith("X-Header-20: value")

    def test_only_blank_lines_advance(self):
        assert strip_mime_headers("\n\nHello") == "Hello"


# ---------------------------------------------------------------------------
# Residual artifact strip
# ---------------------------------------------------------------------------

class TestStripMimeArtifacts:
    def test_removes_content_type_line(self):
        text = 'Hello\nContent-Type: text/html; charset="utf-8"\nWorld'
        assert strip_mime_artifacts(text) == "Hello\n\nWorld"

    @pytest.mark.parametrize(
        "header",
        [
            "Content-Transfer-Encoding: base64",
            "Content-Disposition: inline",
            "MIME-Version: 1.0",
            "content-type: text/plain",
        ],
    )
    def test_removes_other_headers_case_insensitively(self, header):
        assert strip_mime_artifacts(f"A\n{header}\nB") == "A\n\nB"

    def test_removes_charset_fragment(self):
        assert strip_mime_artifacts('meta charset="utf-8" here') == "meta  here"

    def test_removes_long_boundary_marker(self):
        assert strip_mime_artifacts("Text\n--000000000000abcdef123456--\nMore") == "Text\n\nMore"

    def test_keeps_short_dash_runs(self):
        assert strip_mime_artifacts("-- \nJan") == "-- \nJan"


# ---------------------------------------------------------------------------
# decode_body end to end
# ---------------------------------------------------------------------------

class TestDecodeBody:
    def test_returns_decoded_body_model(self):
        assert isinstance(decode_body("Hi"), DecodedBody)

    def test_trims_whitespace(self):
        assert decode_body("  \n Hello \n\n").text == "Hello"

    def test_bytes_input(self):
        assert decode_body("Café".encode("utf-8")).text == "Café"

    def test_none_is_empty(self):
        assert decode_body(None).text == ""

    def test_unsupported_type_is_empty(self):
        assert decode_body(12345).text == ""

    def test_artifacts_removed_inside_body(self):
        text = (
            "Hi Jane,\n"
            "--_000_ABCDEFGHIJKLMNOP_\n"
            "Content-Transfer-Encoding: quoted-printable\n"
            "Thanks"
        )
        assert decode_body(text).text == "Hi Jane,\n\n\nThanks"

    def test_folded_multipart_header_is_cleaned(self):
        """The folded boundary parameter is left to the artifact strip."""
        text = 'Content-Type: multipart/alternative;\n\tboundary="abc"\n\nHi'
        assert decode_body(text).text == "Hi"

    def test_indented_body_after_header_like_line(self):
        text = "Note: see below\n    Hello world, the repair is done."
        assert decode_body(text).text == "Hello world, the repair is done."

    def test_base64_wrapped_mime_part(self):
        inner = "Content-Type: text/plain; charset=utf-8\n\nBedankt voor je bestelling!"
        assert decode_body(_b64(inner), "base64").text == "Bedankt voor je bestelling!"

    def test_base64_then_quoted_printable(self):
        inner = "Caf=C3=A9=20open=0Atoday"
        assert decode_body(_b64(inner), "base64").text == "Café open\ntoday"

    def test_unknown_hint_falls_back_to_detection(self):
        assert decode_body("Hello=20world", "x-uuencode").text == "Hello world"

    @pytest.mark.parametrize(
        "content",
        [
            b"\x00\xff\xfe\xfd",
            b"",
            "=",
            "==",
            "=\n",
            "=ZZ=",
            "\ud800 lone surrogate",
            "<" * 500,
            "A" * 10_001,
            bytearray(b"\x80\x81\x82"),
        ],
    )
    @pytest.mark.parametrize("hint", [None, "base64", "quoted_printable", "garbage"])
    def test_never_raises(self, content, hint):
        result = decode_body(content, hint)
        assert isinstance(result.text, str)
