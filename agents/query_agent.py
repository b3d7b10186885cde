# agents/query_agent.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the Query Agent, the one that actually answers "what did I
# spend on flights?" by working through your inbox step by step.
#
# THE AGENT LOOP (up to MAX_ITERATIONS rounds):
#   1. Show the LLM the question, the search terms tried so far, and the
#      current emails. Ask: what next?
#   2. The LLM picks one of:
#        search / refine → run a Gmail search, those emails become current
#        sum             → add up the amounts in the current emails and
#                          put the total at the top of the list
#        final           → return the answer, we're done
#   3. Loop. The last round is forced to be "final".
#
# Everything the loop remembers about one question lives in a
# SessionState that is created fresh for every question. Two users asking
# at the same time never see each other's search terms.
# ============================================================================

from dataclasses import dataclass, field

from config.settings import MAX_ITERATIONS, FALLBACK_EMAIL_COUNT
from agents.errors import AgentProtocolError
from agents.plans import Search, Refine, Sum, Final
from agents.reasoning import ReasoningGateway, decision_prompt
from tools.amount_tools import calculate_sum, describe_sum
from tools.gmail_tools import search_emails


# Returned when we ran out of rounds but did see some emails.
PARTIAL_ANSWER = (
    "I found some potentially relevant emails but couldn't determine a specific "
    "answer. Please review these emails for the information you're looking for."
)


@dataclass
class SessionState:
    """Scratch space for ONE user question. Thrown away when it's answered."""
    iteration: int = 0
    # Lower-cased, in the order they were tried.
    tried_terms: list[str] = field(default_factory=list)
    candidate_emails: list[str] = field(default_factory=list)
    all_seen_emails: list[str] = field(default_factory=list)

    def has_tried(self, term: str) -> bool:
        return term.lower() in self.tried_terms

    def record_term(self, term: str):
        if not self.has_tried(term):
            self.tried_terms.append(term.lower())

    def fallback_emails(self) -> list[str]:
        return self.all_seen_emails[:FALLBACK_EMAIL_COUNT]


@dataclass
class AgentResult:
    answer: str
    emails: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"answer": self.answer, "emails": self.emails}


class QueryAgent:
    """
    Answers one question at a time about one mailbox.

    Args:
        gateway:   The ReasoningGateway to ask for decisions. A fresh one
                   is made if not given.
        search_fn: search(service, query) -> list of email summaries.
                   Defaults to the real Gmail search.
    """

    def __init__(self, gateway: ReasoningGateway = None, search_fn=search_emails):
        self.gateway = gateway or ReasoningGateway()
        self.search_fn = search_fn

    # ── SEARCH WITH BOOKKEEPING ──────────────────────────────────────

    def _search(self, session: SessionState, service, query: str) -> list[str]:
        """
        Run a search unless this exact term (ignoring case) was already
        tried for this question. Results are added to the seen list.
        """
        if session.has_tried(query):
            print(f"   [AGENT] Skipping repeated search for {query!r}")
            return []

        session.record_term(query)
        results = self.search_fn(service, query)
        session.all_seen_emails.extend(results)
        return results

    # ── THE AGENT LOOP ───────────────────────────────────────────────

    def solve_query(self, user_query: str, service) -> AgentResult:
        """
        Answer `user_query` by searching the mailbox behind `service`.

        Returns:
            AgentResult(answer, emails). The answer is never empty.

        Raises:
            AgentProtocolError: the LLM produced an unusable plan, or no
                answer and no emails after every round.
            ReasoningServiceMalformedOutput: a decision wasn't valid JSON.
            Anything the search function raises (Gmail errors).
        """
        session = SessionState()
        print(f"[AGENT] Starting agent loop with query: {user_query!r}")

        while session.iteration < MAX_ITERATIONS:
            session.iteration += 1
            force_final = session.iteration == MAX_ITERATIONS

            # Nothing current but we've seen emails before: show those
            # rather than an empty context.
            if not session.candidate_emails and session.all_seen_emails:
                session.candidate_emails = session.fallback_emails()

            prompt = decision_prompt(
                user_query, session.candidate_emails, session.tried_terms,
                iteration=session.iteration, force_final=force_final,
            )
            plan = self.gateway.decide(prompt, force_final=force_final,
                                       tried_terms=session.tried_terms)
            print(f"[AGENT] Iteration {session.iteration}: {plan}")

            if isinstance(plan, (Search, Refine)):
                if not plan.query:
                    raise AgentProtocolError(
                        f"Agent plan missing 'query' for {type(plan).__name__.lower()} action."
                    )
                results = self._search(session, service, str(plan.query).strip())

                if not results and session.all_seen_emails:
                    print("   [AGENT] Search found nothing new, using previously seen emails")
                    session.candidate_emails = session.fallback_emails()
                else:
                    session.candidate_emails = results

            elif isinstance(plan, Sum):
                if not session.candidate_emails:
                    term = str(plan.query or plan.category).strip()
                    print(f"   [AGENT] No emails to sum, searching for {term!r} first")
                    session.candidate_emails = self._search(session, service, term)

                result = calculate_sum(session.candidate_emails, plan.category)
                line = f"CALCULATED SUM: {describe_sum(result, plan.category)}"
                print(f"   [SUM] {line}")
                session.candidate_emails = [line] + session.candidate_emails

            elif isinstance(plan, Final):
                if not plan.answer:
                    raise AgentProtocolError("Agent returned final action but no finalAnswer provided.")
                print("[OK] Agent finalized answer")
                return AgentResult(answer=str(plan.answer), emails=session.candidate_emails)

            else:
                raise AgentProtocolError(f"Unrecognized action from agent: {plan!r}")

        # Only reachable if the forced-final round still didn't finish.
        if session.all_seen_emails:
            return AgentResult(answer=PARTIAL_ANSWER, emails=session.fallback_emails())

        raise AgentProtocolError("Agent failed to provide a final answer after multiple iterations.")

    # ── ONE-SHOT PIPELINE ────────────────────────────────────────────

    def solve_one_shot(self, user_query: str, service) -> AgentResult:
        """
        A simpler, non-iterative way to answer a question:

          1. LLM turns the question into a Gmail query + instructions
          2. One search
          3. LLM extracts the relevant facts from each email
          4. LLM writes the answer from those facts
        """
        params = self.gateway.generate_search_params(user_query)
        print(f"[AGENT] One-shot search: {params['searchQuery']!r}")

        emails = self.search_fn(service, params['searchQuery'])
        extractions = [
            self.gateway.extract_from_email(email, params['extractionInstructions'])
            for email in emails
        ]
        answer = self.gateway.compose_answer(user_query, extractions)
        return AgentResult(answer=answer, emails=emails)
