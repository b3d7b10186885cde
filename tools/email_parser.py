# tools/email_parser.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# Turns one raw Gmail API message (format='full') into a short, readable
# text block that the agent, the sum calculator and the user all see:
#
#     From: Jane <jane@example.com>
#     Subject: Your flight is confirmed
#     Date: Mon, 3 Mar 2025 10:00:00 +0530
#     Content: Booking reference ABC123. Total fare Rs. 4,500 ...
#
# That text block is our "email summary". We pass summaries around as
# plain strings because that is exactly what goes into prompts.
#
# No network calls here. Same input in, same output out.
# ============================================================================

import re
import base64
import binascii

from config.settings import SNIPPET_LENGTH


# Fallbacks for missing headers / bodies.
NO_SUBJECT = "No Subject"
UNKNOWN_SENDER = "Unknown Sender"
NO_DATE = "No Date"
NO_CONTENT = "No content available"

# C0 and C1 control characters. Note this includes newlines and tabs, so
# every decoded part collapses onto a single line.
_CONTROL_CHARS = re.compile('[\u0000-\u001f\u007f-\u009f]')

# The four line prefixes of a summary, in order.
_FIELDS = (('from', 'From: '), ('subject', 'Subject: '),
           ('date', 'Date: '), ('content', 'Content: '))


def parse_message(msg: dict) -> str:
    """
    Convert a raw Gmail message into an email summary string.

    Headers are matched by their exact name ("Subject", not "subject").
    The body is every base64 part in the message tree, decoded and
    joined. If there is no body we fall back to Gmail's snippet, then to
    "No content available". Content longer than SNIPPET_LENGTH is cut
    and gets "..." on the end.
    """
    payload = msg.get('payload') or {}
    headers = payload.get('headers') or []

    subject = _header(headers, 'Subject') or NO_SUBJECT
    sender = _header(headers, 'From') or UNKNOWN_SENDER
    date = _header(headers, 'Date') or NO_DATE

    body = extract_body(payload) if payload else ''
    content = body or msg.get('snippet') or NO_CONTENT

    return format_summary(sender, subject, date, truncate(content))


def _header(headers: list, name: str) -> str:
    """Return the value of the first header called exactly `name`, or ''."""
    for h in headers:
        if h.get('name') == name:
            return h.get('value') or ''
    return ''


def extract_body(payload: dict) -> str:
    """
    Walk the MIME part tree depth-first and decode every body we find.

    A Gmail payload is a tree: each part may carry its own base64 body
    ("body": {"data": ...}) AND may contain child parts ("parts": [...]).
    We visit the part itself first, then its children in order, so the
    fragments come out in the same order they appear in the email.
    """
    fragments = []

    def visit(part):
        data = (part.get('body') or {}).get('data')
        if data:
            text = decode_part(data)
            if text is not None:
                fragments.append(_CONTROL_CHARS.sub('', text) + '\n')
        for child in part.get('parts') or []:
            visit(child)

    visit(payload)
    return ''.join(fragments).strip()


def decode_part(data: str):
    """
    Decode one base64 body. Returns None (and logs) if the data is broken.

    Gmail uses the URL-safe alphabet and often drops the "=" padding, so we
    put the padding back before decoding.
    """
    try:
        raw = base64.urlsafe_b64decode(data + '=' * (-len(data) % 4))
    except (binascii.Error, ValueError) as e:
        print(f"   [WARN] Could not decode email body part: {e}")
        return None
    # Invalid UTF-8 bytes become U+FFFD instead of crashing.
    return raw.decode('utf-8', errors='replace')


def truncate(content: str, limit: int = SNIPPET_LENGTH) -> str:
    """Cut content to `limit` characters, adding "..." if anything was cut."""
    if len(content) > limit:
        return content[:limit] + '...'
    return content


def format_summary(sender: str, subject: str, date: str, content: str) -> str:
    """Lay out the four fields as the From/Subject/Date/Content text block."""
    return f"From: {sender}\nSubject: {subject}\nDate: {date}\nContent: {content}"


def read_summary(summary: str) -> dict:
    """
    The reverse of format_summary: pull the fields back out of a block.

    Missing lines come back as ''. Used by the sum calculator, which only
    ever sees the text form.
    """
    lines = summary.split('\n')
    fields = {}
    for key, prefix in _FIELDS:
        fields[key] = next(
            (line[len(prefix):] for line in lines if line.startswith(prefix)), ''
        )
    return fields
