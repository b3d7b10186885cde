# tests/test_plans.py
#
# Tests for turning raw LLM text into Search/Refine/Sum/Final plans
# (agents/plans.py), including every alternate shape we accept.

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from agents.errors import AgentProtocolError, ReasoningServiceMalformedOutput
from agents.plans import (
    Search, Refine, Sum, Final, parse_plan, parse_json_object, canonicalize,
)


class TestParseJsonObject:
    """Getting a dict out of whatever the model wrote."""

    def test_plain(self):
        assert parse_json_object('{"action": "search", "query": "flight"}') == {
            "action": "search", "query": "flight",
        }

    def test_code_fence(self):
        text = '```json\n{"action": "final", "finalAnswer": "Done"}\n```'
        assert parse_json_object(text)["finalAnswer"] == "Done"

    def test_chatter_around_object(self):
        text = 'Sure! Here is my plan: {"action": "search", "query": "uber"} Hope that helps.'
        assert parse_json_object(text)["query"] == "uber"

    def test_not_json(self):
        with pytest.raises(ReasoningServiceMalformedOutput) as exc:
            parse_json_object("I think you should search for flights")
        assert exc.value.raw_text == "I think you should search for flights"
        assert "Failed to parse agent response as JSON" in str(exc.value)

    def test_json_but_not_object(self):
        with pytest.raises(ReasoningServiceMalformedOutput):
            parse_json_object('["search", "flight"]')


class TestCanonicalShapes:
    """The shape we ask for."""

    def test_search(self):
        assert parse_plan('{"action": "search", "query": "prime"}') == Search(query="prime")

    def test_refine(self):
        assert parse_plan('{"action": "refine", "query": "invoice"}') == Refine(query="invoice")

    def test_sum_with_category(self):
        assert parse_plan('{"action": "sum", "category": "flights"}') == Sum(category="flights")

    def test_sum_with_sum_category(self):
        plan = parse_plan('{"action": "sum", "sumCategory": "subscriptions", "query": "netflix"}')
        assert plan == Sum(category="subscriptions", query="netflix")

    def test_sum_without_category(self):
        assert parse_plan('{"action": "sum"}') == Sum(category="default")

    def test_final(self):
        assert parse_plan('{"action": "final", "finalAnswer": "You spent Rs.7,700"}') == \
            Final(answer="You spent Rs.7,700")

    def test_action_case_insensitive(self):
        assert parse_plan('{"action": "SEARCH", "query": "x"}') == Search(query="x")

    def test_missing_fields_not_rejected_here(self):
        """Empty queries and answers are the loop's business, not the parser's."""
        assert parse_plan('{"action": "search"}') == Search(query=None)
        assert parse_plan('{"action": "final"}') == Final(answer=None)


class TestAlternateShapes:
    """Shapes models produce instead of the one we asked for."""

    def test_final_flag(self):
        plan = parse_plan('{"final": true, "finalAnswer": "Your meeting is at 3pm"}')
        assert plan == Final(answer="Your meeting is at 3pm")

    def test_nested_search(self):
        assert parse_plan('{"search": {"query": "flight"}}') == Search(query="flight")

    def test_nested_refine(self):
        assert parse_plan('{"refine": {"query": "booking"}}') == Refine(query="booking")

    def test_nested_final(self):
        assert parse_plan('{"final": {"finalAnswer": "Nothing found"}}') == Final(answer="Nothing found")

    def test_nested_sum(self):
        assert parse_plan('{"sum": {"category": "flights"}}') == Sum(category="flights")

    def test_explicit_action_wins(self):
        flat = canonicalize({"action": "search", "query": "a", "final": True})
        assert flat["action"] == "search"


class TestRejected:
    """Nothing usable → protocol error."""

    def test_unknown_action(self):
        with pytest.raises(AgentProtocolError, match="Unrecognized action"):
            parse_plan('{"action": "delete", "query": "everything"}')

    def test_no_action_at_all(self):
        with pytest.raises(AgentProtocolError):
            parse_plan('{"thoughts": "hmm"}')

    def test_final_false_is_not_final(self):
        with pytest.raises(AgentProtocolError):
            parse_plan('{"final": false, "finalAnswer": "x"}')
