# agents/reasoning.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# The "Reasoning Gateway": every question we put to the LLM goes through
# here. It adds the safety rails around an unreliable text generator:
#
#   decide()                 → "what should the agent do next?"
#                              Returns a plan (Search/Refine/Sum/Final).
#                              Never gives up with an overload error: if the
#                              provider stays busy, it returns a polite
#                              Final answer instead.
#   generate_search_params() → turn the user's question into a Gmail query
#                              plus extraction instructions
#   extract_from_email()     → pull the relevant facts out of one email
#   compose_answer()         → write the final answer from those facts
#
# The last three are "one-shot" helpers: if the model's output can't be
# parsed, they fall back to sensible defaults rather than failing.
# ============================================================================

from agents.base_agent import BaseAgent
from agents.errors import ReasoningServiceTransientError, ReasoningServiceMalformedOutput
from agents.plans import (
    Final, parse_json_object, canonicalize, to_plan,
)


# ── CANNED ANSWERS ─────────────────────────────────────────────────────

# Used when the provider is still overloaded after every retry.
OVERLOADED_ANSWER = (
    "I'm having trouble processing your request. Based on the available "
    "information, I couldn't determine a specific answer."
)

# Used when we force a final answer and the model didn't write one.
FORCED_FINAL_ANSWER = (
    "Based on the available emails, I couldn't find specific information "
    "about your query. Please try a different search term."
)

REPEATED_QUERY_INSTRUCTION = (
    "\n\nIMPORTANT: You've already searched for this term. "
    "Please try a different search term or approach."
)

DEFAULT_EXTRACTION_INSTRUCTIONS = (
    "Extract the facts from this email that help answer the user's question: "
    "names, dates, amounts, and any reference numbers."
)


# ── SYSTEM PROMPTS ─────────────────────────────────────────────────────

DECISION_SYSTEM_PROMPT = """You are an agent that reasons about how to search emails and answer user queries using external tools. You can search emails, refine searches, calculate sums from monetary values in emails, and provide final answers. Your output must be a valid JSON object with 'action' (must be one of 'search', 'refine', 'sum', or 'final') and appropriate fields for each action type. When searching, use different search terms in each iteration if previous searches didn't yield useful results."""

PARAMS_SYSTEM_PROMPT = """You translate a user's question about their email inbox into Gmail search parameters.
Respond with ONLY a JSON object with two keys:
- "searchQuery": a short Gmail search query (one to three words, Gmail operators such as from: or newer_than: allowed)
- "extractionInstructions": one sentence telling an assistant what to pull out of each matching email"""

EXTRACTION_SYSTEM_PROMPT = """You read one email summary and extract only the information requested.
Be brief. If the email has nothing relevant, reply exactly: Nothing relevant."""

ANSWER_SYSTEM_PROMPT = """You answer a user's question about their email inbox using notes extracted from individual emails.
Answer concisely and directly. If the notes don't contain the answer, say so honestly."""


# ── PROMPT BUILDING ────────────────────────────────────────────────────

def decision_prompt(user_query: str, emails: list[str], tried_terms,
                    iteration: int = 1, force_final: bool = False) -> str:
    """
    Build the "what next?" prompt for one iteration.

    Contains the user's question, every search term tried so far, and the
    current emails (or an explicit "nothing yet" line). From the second
    iteration on, adds hints about synonyms; on the forced-final round,
    demands an answer instead.
    """
    context = f'User Query: "{user_query}"\n'

    if tried_terms:
        context += f"\nPrevious search terms: {', '.join(tried_terms)}\n"

    if emails:
        emails_list = "\n\n---\n\n".join(
            f"Email #{idx}:\n{email}" for idx, email in enumerate(emails, start=1)
        )
        context += f"\nCurrent Email Results:\n{emails_list}\n"
    else:
        context += "\nNo email results have been retrieved yet.\n"

    extra_instruction = ""
    if force_final:
        extra_instruction = (
            "\nIMPORTANT: You must now provide a FINAL answer using the current email results. "
            "Do not ask for further search. Include the answer in the 'finalAnswer' field "
            "and set 'action' to 'final'."
        )
    elif iteration > 1:
        extra_instruction = f"""
This is iteration {iteration}. If previous searches didn't yield useful results, try different search terms, synonyms, or related concepts. For example:
- For "meeting": try "call", "appointment", "discussion", "sync", "conference", "zoom", "teams"
- For "receipt": try "invoice", "payment", "bill", "transaction", "order"
- For "travel": try "flight", "trip", "booking", "hotel", "reservation", "itinerary"

Avoid repeating previous search terms. Be creative with alternatives."""

    return f"""You are an intelligent email-search agent that uses external tools (Gmail search) to answer a user's query.
Based on the context provided, decide your next step by outputting a JSON object with the following keys:
- "action": must be one of "search", "refine", "sum", or "final".
  • "search": if you need to search Gmail for more data, include a "query" field with a concise search term, ideally one or two words that capture the essence of the user's request. For example, if the user is looking for information about a "prime video subscription," you might use "prime."
  • "refine": if the current results are insufficient, provide a more focused search query in the "query" field, also limited to one or two words. This could involve using synonyms or related terms, such as trying "appointment" instead of "meeting" or "invoice" instead of "receipt".
  • "sum": if the user is asking about total spending or costs, use this action to calculate a sum from the emails. Include a "category" field describing what to sum (e.g., "flights", "subscriptions").
  • "final": if you have enough information, provide a final concise answer in the "finalAnswer" field.
Do not include any extra text.

Context:
{context}
{extra_instruction}

What is your next step?""".strip()


# ── THE GATEWAY ────────────────────────────────────────────────────────

class ReasoningGateway(BaseAgent):
    """
    All LLM calls for one question go through one of these.

    Holds no per-question state: the tried search terms are passed in by
    the caller on every decide() call.
    """

    def __init__(self):
        super().__init__()
        self.system_prompt = DECISION_SYSTEM_PROMPT

    def _decide_once(self, prompt: str) -> dict:
        """One decision call → canonical dict. Malformed output raises."""
        text = self.complete(prompt, DECISION_SYSTEM_PROMPT)
        print(f"   [AGENT] Raw decision: {text}")
        return canonicalize(parse_json_object(text))

    def decide(self, prompt: str, force_final: bool = False, tried_terms=()):
        """
        Ask the LLM for the next plan.

        Args:
            prompt:      The full decision prompt (see decision_prompt()).
            force_final: Last round: anything other than Final is turned
                         into Final.
            tried_terms: Search terms already used for this question
                         (lower-cased). A repeat gets ONE re-ask.

        Returns:
            A plan object. On persistent overload, Final(OVERLOADED_ANSWER).

        Raises:
            ReasoningServiceMalformedOutput if the model's text isn't JSON.
            AgentProtocolError if the action is unknown.
        """
        tried = {t.lower() for t in tried_terms}

        try:
            flat = self._decide_once(prompt)

            if flat['action'] in ('search', 'refine') and _is_repeat(flat['query'], tried):
                print(f"   [AGENT] Query {flat['query']!r} was already tried, asking for a different one")
                flat = self._decide_once(prompt + REPEATED_QUERY_INSTRUCTION)

        except ReasoningServiceTransientError:
            print("   [AGENT] Exhausted retries, returning final answer")
            return Final(answer=OVERLOADED_ANSWER)

        if force_final and flat['action'] != 'final':
            print("   [AGENT] Forcing action to 'final'")
            flat['action'] = 'final'
            flat['finalAnswer'] = flat.get('finalAnswer') or FORCED_FINAL_ANSWER

        return to_plan(flat)

    # ── ONE-SHOT HELPERS ─────────────────────────────────────────────
    # These never raise on bad output; they substitute defaults.
    # Overload is treated the same way.

    def generate_search_params(self, user_query: str) -> dict:
        """
        Question → {"searchQuery": ..., "extractionInstructions": ...}.

        Falls back to searching for the question itself with generic
        instructions.
        """
        fallback = {
            "searchQuery": user_query,
            "extractionInstructions": DEFAULT_EXTRACTION_INSTRUCTIONS,
        }
        try:
            data = parse_json_object(self.complete(f'User question: "{user_query}"', PARAMS_SYSTEM_PROMPT))
        except (ReasoningServiceMalformedOutput, ReasoningServiceTransientError) as e:
            print(f"   [WARN] Could not generate search parameters ({e}); using defaults")
            return fallback

        return {
            "searchQuery": str(data.get("searchQuery") or fallback["searchQuery"]),
            "extractionInstructions": str(
                data.get("extractionInstructions") or fallback["extractionInstructions"]
            ),
        }

    def extract_from_email(self, summary: str, instructions: str) -> str:
        """
        Pull the requested facts out of one email summary.

        If the model answers with JSON we keep its "summary"/"extracted"
        field; plain text is used as-is. If the call fails softly (overload,
        empty reply) the email itself is returned so nothing is lost.
        """
        prompt = f"Instructions: {instructions}\n\nEmail:\n{summary}"
        try:
            text = self.complete(prompt, EXTRACTION_SYSTEM_PROMPT)
        except (ReasoningServiceTransientError, ReasoningServiceMalformedOutput) as e:
            print(f"   [WARN] Extraction skipped ({e})")
            return summary

        try:
            data = parse_json_object(text)
        except ReasoningServiceMalformedOutput:
            return text
        return str(data.get("summary") or data.get("extracted") or text)

    def compose_answer(self, user_query: str, extractions: list[str]) -> str:
        """Write the final answer from per-email notes."""
        if not extractions:
            return "I couldn't find any emails related to your question."

        notes = "\n\n---\n\n".join(
            f"Note #{idx}:\n{note}" for idx, note in enumerate(extractions, start=1)
        )
        try:
            return self.complete(f'Question: "{user_query}"\n\n{notes}', ANSWER_SYSTEM_PROMPT)
        except (ReasoningServiceTransientError, ReasoningServiceMalformedOutput) as e:
            print(f"   [WARN] Answer composition skipped ({e})")
            return "Here is what I found in your emails:\n\n" + "\n\n".join(extractions)


def _is_repeat(query, tried: set) -> bool:
    return isinstance(query, str) and query.lower() in tried
