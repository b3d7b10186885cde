# tools/amount_tools.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# The "calculator". When the user asks something like "how much did I
# spend on flights?", the agent asks for a SUM, and this file:
#
#   1. Picks a set of money-matching patterns for the category
#      ("flights" → flight patterns, "netflix subscription" →
#      subscription patterns, anything else → the default pattern)
#   2. Scans the subject + content of every email summary
#   3. Adds up every amount it finds and works out the most common
#      currency symbol
#
# Like email_parser.py, this is pure Python: no AI, no network.
#
# NOTE: the patterns for a category are NOT exclusive. If "Total fare
# Rs. 4500" matches both the keyword pattern and the bare-currency
# pattern, 4500 is counted twice. That's the long-standing behaviour
# and is kept as-is (see DESIGN.md).
# ============================================================================

import re
from collections import Counter
from dataclasses import dataclass, field

from tools.email_parser import read_summary


# Currency markers we understand. "Rs" with or without the dot.
_CURRENCY = r'(?:₹|Rs\.?|INR|USD|\$)'

# An amount: digits with optional thousands commas and optional decimals.
_AMOUNT = r'([0-9,]+(?:\.[0-9]+)?)'

# Used to pull the currency marker back out of a matched piece of text.
_CURRENCY_SYMBOL = re.compile(r'₹|Rs\.?|INR|USD|\$', re.IGNORECASE)

# "rs", "RS." and "Rs." are the same currency: tally and report them as one.
_CANONICAL_CURRENCY = {'rs': 'Rs.', 'rs.': 'Rs.', 'inr': 'INR', 'usd': 'USD'}

# Shown when no match carried a currency marker at all.
DEFAULT_CURRENCY = '₹'


def _pattern(prefix: str = '', suffix: str = '') -> re.Pattern:
    return re.compile(prefix + _CURRENCY + r'\s*' + _AMOUNT + suffix, re.IGNORECASE)


# Category → ordered list of patterns. Every pattern in the list is run;
# all of their matches count.
CATEGORY_PATTERNS = {
    'default': [
        _pattern(),
    ],
    'flight': [
        _pattern(prefix=r'(?:total|amount|fare|price|cost)(?:[:\s])*'),
        _pattern(suffix=r'(?:[^0-9]|$)'),
    ],
    'subscription': [
        _pattern(prefix=r'(?:monthly|yearly|annual|subscription|plan|fee)(?:[:\s])*'),
        _pattern(suffix=r'(?:[^0-9]|$)'),
    ],
}


@dataclass
class AmountMatch:
    """One amount found in one email."""
    sender: str
    subject: str
    date: str
    amount: float
    currency: str
    matched_text: str

    def to_dict(self) -> dict:
        return {
            'from': self.sender,
            'subject': self.subject,
            'date': self.date,
            'amount': self.amount,
            'currency': self.currency,
            'matchedText': self.matched_text,
        }


@dataclass
class AggregationResult:
    """The answer to "how much in total?" plus the evidence for it."""
    total: float
    currency: str
    details: list[AmountMatch] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'total': self.total,
            'currency': self.currency,
            'details': [d.to_dict() for d in self.details],
        }


def _canonical_currency(marker: str) -> str:
    return _CANONICAL_CURRENCY.get(marker.lower(), marker)


def category_key(category: str) -> str:
    """
    Map a free-text category onto one of CATEGORY_PATTERNS' keys.

    "Flights to Goa" contains "flight" → 'flight'. Anything we don't
    recognise uses 'default'.
    """
    lowered = (category or '').lower()
    for key in CATEGORY_PATTERNS:
        if key != 'default' and key in lowered:
            return key
    return 'default'


def calculate_sum(emails: list[str], category: str) -> AggregationResult:
    """
    Add up every money amount in `emails` for the given category.

    Args:
        emails:   Email summary strings (From/Subject/Date/Content blocks).
                  Lines that aren't summaries (like a previous
                  "CALCULATED SUM: ..." line) simply contribute nothing.
        category: What we're summing ("flights", "subscriptions", ...).

    Returns:
        AggregationResult with the total, the dominant currency and one
        detail entry per amount that parsed as a number.
    """
    key = category_key(category)
    patterns = CATEGORY_PATTERNS[key]
    print(f"   [SUM] Calculating sum for '{category}' using '{key}' patterns")

    currency_counts = Counter()
    details = []
    total = 0.0

    for email in emails:
        fields = read_summary(email)
        search_text = f"{fields['subject']} {fields['content']}"

        for pattern in patterns:
            for match in pattern.finditer(search_text):
                matched_text = match.group(0)
                symbol = _CURRENCY_SYMBOL.search(matched_text)
                currency = _canonical_currency(symbol.group(0)) if symbol else ''
                if currency:
                    currency_counts[currency] += 1

                # "1,234.50" → 1234.5. A bare "," has no digits left and is skipped.
                try:
                    amount = float(match.group(1).replace(',', ''))
                except ValueError:
                    continue

                details.append(AmountMatch(
                    sender=fields['from'],
                    subject=fields['subject'],
                    date=fields['date'],
                    amount=amount,
                    currency=currency,
                    matched_text=matched_text,
                ))
                total += amount

    # most_common keeps first-seen order on ties.
    dominant = currency_counts.most_common(1)[0][0] if currency_counts else DEFAULT_CURRENCY

    print(f"   [SUM] {len(details)} amount(s), total {dominant}{format_amount(total)}")
    return AggregationResult(total=total, currency=dominant, details=details)


def format_amount(value: float) -> str:
    """
    Render a number with Indian digit grouping and at most two decimals.

        7700      → "7,700"
        123456.5  → "1,23,456.5"
        1234567.891 → "12,34,567.89"
    """
    negative = value < 0
    text = f"{abs(value):.2f}".rstrip('0').rstrip('.')
    whole, _, fraction = text.partition('.')

    # Last three digits, then groups of two.
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ','.join(groups + [tail])

    result = whole + ('.' + fraction if fraction else '')
    return '-' + result if negative else result


def describe_sum(result: AggregationResult, category: str) -> str:
    """The one-line sentence the agent sees after a SUM step."""
    return (f"Based on the emails, the total {category} amount is "
            f"{result.currency}{format_amount(result.total)}")
