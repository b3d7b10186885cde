# agents/errors.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# Every way a question can fail, as a Python exception class.
#
# Each error knows two things the web server needs:
#   - http_status: which HTTP status code to send back
#   - answer:      a friendly sentence to show the user instead of a
#                  stack trace
#
# The web layer (web/app.py) catches InboxAgentError and turns it into
# {"answer": ..., "error": ...} JSON. Anything else becomes a generic 500.
# ============================================================================

GENERIC_ANSWER = "An error occurred while processing your query."


class InboxAgentError(Exception):
    """Base exception for everything the inbox agent raises on purpose."""

    http_status = 500
    answer = GENERIC_ANSWER


class AuthenticationError(InboxAgentError):
    """Missing or invalid token, missing refresh token, or a failed refresh."""

    http_status = 401
    answer = "Authentication required. Please sign in with Google again."


class UpstreamScopeError(InboxAgentError):
    """Gmail refused access because the granted OAuth scope is too narrow."""

    http_status = 403
    answer = "Authentication error: Please re-authenticate with full email access permissions."


class ReasoningServiceTransientError(InboxAgentError):
    """The LLM provider stayed overloaded / rate-limited through every retry."""


class ReasoningServiceMalformedOutput(InboxAgentError):
    """The LLM answered, but not with the JSON object we asked for."""

    def __init__(self, message, raw_text=""):
        super().__init__(message)
        self.raw_text = raw_text


class MailStoreError(InboxAgentError):
    """Generic Gmail failure (network, quota, server error)."""


class AgentProtocolError(InboxAgentError):
    """The agent's plan is unusable: unknown action or a missing required field."""
