# tests/test_email_parser.py
#
# Tests for turning raw Gmail messages into From/Subject/Date/Content
# summaries (tools/email_parser.py). No network, just dicts in.

import base64

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tools.email_parser import (
    parse_message, extract_body, truncate, read_summary, format_summary,
    NO_CONTENT,
)


def _b64(text: str) -> str:
    """Encode like Gmail does: URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(text.encode('utf-8')).decode('ascii').rstrip('=')


def _message(headers=None, payload_body=None, parts=None, snippet=None):
    payload = {'headers': headers or []}
    if payload_body is not None:
        payload['body'] = {'data': _b64(payload_body)}
    if parts is not None:
        payload['parts'] = parts
    msg = {'id': 'msg_1', 'payload': payload}
    if snippet is not None:
        msg['snippet'] = snippet
    return msg


HEADERS = [
    {'name': 'From', 'value': 'Air India <noreply@airindia.com>'},
    {'name': 'Subject', 'value': 'Your booking is confirmed'},
    {'name': 'Date', 'value': 'Mon, 3 Mar 2025 10:00:00 +0530'},
]


class TestHeaders:
    """Header lookup and defaults."""

    def test_headers_extracted(self):
        summary = parse_message(_message(HEADERS, payload_body="Hello"))
        assert summary == (
            "From: Air India <noreply@airindia.com>\n"
            "Subject: Your booking is confirmed\n"
            "Date: Mon, 3 Mar 2025 10:00:00 +0530\n"
            "Content: Hello"
        )

    def test_missing_headers_use_defaults(self):
        summary = parse_message(_message([], payload_body="Hi"))
        assert "From: Unknown Sender" in summary
        assert "Subject: No Subject" in summary
        assert "Date: No Date" in summary

    def test_header_names_are_case_sensitive(self):
        """A lower-case 'subject' header doesn't count as 'Subject'."""
        headers = [{'name': 'subject', 'value': 'lower case'}]
        fields = read_summary(parse_message(_message(headers, payload_body="x")))
        assert fields['subject'] == "No Subject"


class TestBody:
    """Body decoding, part-tree walking and fallbacks."""

    def test_nested_parts_in_order(self):
        parts = [
            {'mimeType': 'text/plain', 'body': {'data': _b64("first")}},
            {'mimeType': 'multipart/alternative', 'parts': [
                {'mimeType': 'text/plain', 'body': {'data': _b64("second")}},
                {'mimeType': 'text/html', 'body': {'data': _b64("third")}},
            ]},
        ]
        assert extract_body({'parts': parts}) == "first\nsecond\nthird"

    def test_control_characters_removed(self):
        """Newlines and tabs inside a part are control characters too."""
        body = extract_body({'body': {'data': _b64("Total:\tRs. 500\r\nThanks\x07")}})
        assert body == "Total:Rs. 500Thanks"

    def test_malformed_base64_is_skipped(self):
        parts = [
            {'body': {'data': 'a'}},  # one stray character can't be base64
            {'body': {'data': _b64("still here")}},
        ]
        assert extract_body({'parts': parts}) == "still here"

    def test_snippet_used_when_no_body(self):
        fields = read_summary(parse_message(_message(HEADERS, snippet="Gmail preview text")))
        assert fields['content'] == "Gmail preview text"

    def test_no_body_no_snippet(self):
        fields = read_summary(parse_message(_message(HEADERS)))
        assert fields['content'] == NO_CONTENT

    def test_message_without_payload(self):
        fields = read_summary(parse_message({'id': 'x'}))
        assert fields['content'] == NO_CONTENT
        assert fields['from'] == "Unknown Sender"


class TestTruncation:
    """Content is capped at 200 characters."""

    def test_long_content_truncated(self):
        body = "a" * 150 + "b" * 100
        fields = read_summary(parse_message(_message(HEADERS, payload_body=body)))
        assert fields['content'] == body[:200] + "..."

    def test_exactly_200_unchanged(self):
        body = "c" * 200
        fields = read_summary(parse_message(_message(HEADERS, payload_body=body)))
        assert fields['content'] == body

    def test_truncate_short_text(self):
        assert truncate("short") == "short"


class TestReadSummary:
    """Pulling fields back out of a summary block."""

    def test_round_trip_fields(self):
        block = format_summary("a@b.com", "Hi", "today", "Rs. 100 paid")
        assert read_summary(block) == {
            'from': "a@b.com", 'subject': "Hi", 'date': "today", 'content': "Rs. 100 paid",
        }

    def test_non_summary_line(self):
        fields = read_summary("CALCULATED SUM: Based on the emails, the total is ₹0")
        assert fields == {'from': '', 'subject': '', 'date': '', 'content': ''}
