# agents/plans.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# After every round, the LLM tells the agent what to do next as a small
# JSON object. This file turns that text into one of four "plans":
#
#     Search(query)     → search Gmail
#     Refine(query)     → search Gmail again with a better query
#     Sum(category)     → add up money amounts in the current emails
#     Final(answer)     → we're done, here's the answer
#
# The model doesn't always follow the format we ask for. These are the
# shapes we've seen and accept:
#
#     {"action": "search", "query": "flight"}           ← what we asked for
#     {"search": {"query": "flight"}}                   ← nested
#     {"refine": {"query": "invoice"}}                  ← nested
#     {"sum": {"category": "flights"}}                  ← nested
#     {"final": true, "finalAnswer": "..."}             ← boolean flag
#     {"final": {"finalAnswer": "..."}}                 ← nested
#
# Anything else without a usable "action" is rejected.
# ============================================================================

import re
import json
from dataclasses import dataclass

from agents.errors import AgentProtocolError, ReasoningServiceMalformedOutput


ACTIONS = ('search', 'refine', 'sum', 'final')

# ```json ... ``` fences some models wrap their output in.
_FENCE_RE = re.compile(r'^```(?:json)?\s*|\s*```$', re.IGNORECASE)

# The outermost {...} in a response that has chatter around the JSON.
_OBJECT_RE = re.compile(r'\{.*\}', re.DOTALL)


# ── THE FOUR PLANS ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class Search:
    query: str | None = None


@dataclass(frozen=True)
class Refine:
    """Same handling as Search; kept separate so logs show the intent."""
    query: str | None = None


@dataclass(frozen=True)
class Sum:
    category: str = 'default'
    query: str | None = None


@dataclass(frozen=True)
class Final:
    answer: str | None = None


AgentPlan = Search | Refine | Sum | Final


# ── PARSING ────────────────────────────────────────────────────────────

def parse_json_object(text: str) -> dict:
    """
    Pull a JSON object out of an LLM response.

    Tries the text as-is (minus any ``` fences), then the outermost
    {...} span. Raises ReasoningServiceMalformedOutput if neither is a
    JSON object.
    """
    cleaned = _FENCE_RE.sub('', text.strip())
    candidates = [cleaned]
    match = _OBJECT_RE.search(cleaned)
    if match and match.group(0) != cleaned:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data

    raise ReasoningServiceMalformedOutput(
        f"Failed to parse agent response as JSON: {text}", raw_text=text
    )


def canonicalize(raw: dict) -> dict:
    """
    Rewrite any accepted shape into the flat, canonical form:

        {"action": ..., "query": ..., "category": ..., "finalAnswer": ...}

    An explicit "action" always wins. Otherwise the alternate shapes
    listed at the top of this file are checked in order. If nothing
    matches, "action" is None and to_plan() will reject it.
    """
    action = raw.get('action')
    query = raw.get('query')
    final_answer = raw.get('finalAnswer')

    nested_sum = raw.get('sum') if isinstance(raw.get('sum'), dict) else {}
    category = raw.get('sumCategory') or nested_sum.get('category') or raw.get('category')

    if not action:
        final = raw.get('final')
        search = raw.get('search')
        refine = raw.get('refine')

        if final is True:
            action = 'final'
        elif isinstance(search, dict) and search.get('query'):
            action, query = 'search', search['query']
        elif isinstance(refine, dict) and refine.get('query'):
            action, query = 'refine', refine['query']
        elif isinstance(final, dict) and 'finalAnswer' in final:
            action, final_answer = 'final', final['finalAnswer']
        elif nested_sum.get('category'):
            action = 'sum'

    return {
        'action': action.lower() if isinstance(action, str) else action,
        'query': query,
        'category': category,
        'finalAnswer': final_answer,
    }


def to_plan(flat: dict) -> AgentPlan:
    """
    Turn a canonical dict into a plan object.

    Required fields (query for Search, answer for Final) are NOT checked
    here; the agent loop checks them when it acts on the plan.
    """
    action = flat.get('action')

    if action == 'search':
        return Search(query=flat.get('query'))
    if action == 'refine':
        return Refine(query=flat.get('query'))
    if action == 'sum':
        return Sum(category=flat.get('category') or 'default', query=flat.get('query'))
    if action == 'final':
        return Final(answer=flat.get('finalAnswer'))

    raise AgentProtocolError(f"Unrecognized action from agent: {action!r}")


def parse_plan(text: str) -> AgentPlan:
    """Text straight from the model → plan object."""
    return to_plan(canonicalize(parse_json_object(text)))
