# orchestrator.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# The "manager" between the outside world (web server, terminal) and the
# Query Agent. For every question it:
#
#   1. Checks the user sent a token pair at all
#   2. Refreshes the access token ONCE, before anything else happens
#      (a failed refresh stops here: the agent never starts)
#   3. Opens a Gmail connection with the fresh token
#   4. Hands the question to the Query Agent (agent loop or one-shot)
#
# Each question gets its own QueryAgent run and its own session state,
# so the Orchestrator itself can be shared by every request.
# ============================================================================

from urllib.parse import unquote

# "Console" and "Panel" from "rich" make terminal output pretty.
from rich.console import Console
from rich.panel import Panel

from agents.errors import AuthenticationError
from agents.query_agent import QueryAgent, AgentResult
from tools.gmail_tools import refresh_credentials, build_gmail_service, get_local_gmail_service

console = Console()

MODES = ('agent', 'one_shot')


class Orchestrator:
    """Routes one question at a time to the Query Agent."""

    def __init__(self, query_agent: QueryAgent = None):
        self.query_agent = query_agent or QueryAgent()

    def _run(self, question: str, service, mode: str) -> AgentResult:
        if mode == 'one_shot':
            return self.query_agent.solve_one_shot(question, service)
        return self.query_agent.solve_query(question, service)

    def answer_query(self, question: str, token: dict | None, mode: str = 'agent') -> AgentResult:
        """
        Answer a question for a web user identified by their token pair.

        Args:
            question: The user's question.
            token:    {"accessToken": ..., "refreshToken": ...} from the
                      browser. The refresh token may arrive URL-encoded.
            mode:     'agent' (iterative loop) or 'one_shot'.

        Raises:
            AuthenticationError: no token, no refresh token, refresh failed.
            Any error from the agent or Gmail, unchanged.
        """
        if not token:
            raise AuthenticationError("Authentication required")

        refresh_token = token.get('refreshToken')
        if not refresh_token:
            raise AuthenticationError("Refresh token is missing")

        console.print(Panel(
            f"[bold]{question}[/bold]\n"
            f"   Mode: {mode}\n"
            f"   Access token: {'present' if token.get('accessToken') else 'missing'}",
            title="Query",
            border_style="blue",
        ))

        creds = refresh_credentials(token.get('accessToken'), unquote(refresh_token))
        service = build_gmail_service(creds)

        result = self._run(question, service, mode)
        console.print(f"[green]OK - Answered with {len(result.emails)} email(s)[/green]")
        return result

    def ask_local(self, question: str, mode: str = 'agent') -> AgentResult:
        """
        Terminal mode: answer a question using the token saved on disk
        (config/token.pickle), logging in through the browser if needed.
        """
        service = get_local_gmail_service()
        return self._run(question, service, mode)
