# web/app.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the web server, the bridge between the browser and the Query
# Agent. Login happens through Google; the resulting tokens live in
# http-only cookies; questions arrive as JSON and answers go back as JSON.
#
# ENDPOINTS:
#   GET  /api/auth/google   → Redirect to Google's consent screen
#   GET  /auth/callback     → Google sends the user back here with a code
#   GET  /api/tokens        → The current session's tokens (or nulls)
#   POST /api/auth/logout   → Forget the tokens
#   POST /api/query         → Ask a question about your inbox
#   GET  /api/health        → Which LLM providers are configured
#   GET  /                  → Sign-in page
#   GET  /dashboard         → Question page (signed-in users only)
#
# ROUTE GUARD:
#   No access_token cookie + /dashboard → sent to /
#   Has access_token cookie + /         → sent to /dashboard
# ============================================================================

# ── IMPORTS ────────────────────────────────────────────────────────────
import sys
import asyncio
from pathlib import Path
from contextlib import asynccontextmanager

# FastAPI framework imports
from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from pydantic import BaseModel

# Add project root to Python's path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Our project imports
from config.settings import ACCESS_TOKEN_MAX_AGE, REFRESH_TOKEN_MAX_AGE, COOKIE_SECURE
from agents.errors import InboxAgentError, AuthenticationError, GENERIC_ANSWER
from agents import base_agent
from orchestrator import Orchestrator, MODES
from tools.gmail_tools import get_auth_url, exchange_code


# ── GLOBAL STATE ───────────────────────────────────────────────────────
# One Orchestrator, shared by all requests. It holds no per-question
# state: every question gets a fresh session inside the Query Agent.
orchestrator = None


# ── SERVER STARTUP ─────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the Orchestrator when the server starts."""
    global orchestrator
    orchestrator = Orchestrator()
    print("\n[OK] Inbox Query Agent web server ready!")
    print("   Open http://localhost:8000 in your browser\n")
    yield


app = FastAPI(
    title="Inbox Query Agent",
    description="Ask natural-language questions about your Gmail inbox",
    lifespan=lifespan
)


# ── REQUEST BODY MODELS ───────────────────────────────────────────────

class TokenPair(BaseModel):
    accessToken: str | None = None
    refreshToken: str | None = None


class QueryRequest(BaseModel):
    """Data for asking a question."""
    query: str = ""
    token: TokenPair | None = None
    mode: str = "agent"


def _error_response(status_code: int, answer: str, error: str) -> JSONResponse:
    """Every failure still carries a human-readable "answer"."""
    return JSONResponse({"answer": answer, "error": error}, status_code=status_code)


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    """
    A query body that doesn't fit QueryRequest still gets an "answer".

    A broken "token" field means we can't tell who the user is → 401.
    Any other bad field → 400. Other endpoints keep FastAPI's default 422.
    """
    if request.url.path != "/api/query":
        return await request_validation_exception_handler(request, exc)

    errors = exc.errors()
    detail = "; ".join(
        f"{'.'.join(str(part) for part in e.get('loc', ()))}: {e.get('msg', '')}" for e in errors
    )
    print(f"[WARN] Invalid query request: {detail}")

    if any('token' in e.get('loc', ()) for e in errors):
        return _error_response(401, AuthenticationError.answer, f"Invalid token: {detail}")
    return _error_response(400, GENERIC_ANSWER, f"Invalid request: {detail}")


# ============================================================================
# ROUTE GUARD
# ============================================================================

@app.middleware("http")
async def route_guard(request: Request, call_next):
    """Keep signed-out users off /dashboard and signed-in users off /."""
    path = request.url.path
    signed_in = bool(request.cookies.get("access_token"))

    if path.startswith("/dashboard") and not signed_in:
        return RedirectResponse("/", status_code=307)
    if path == "/" and signed_in:
        return RedirectResponse("/dashboard", status_code=307)

    return await call_next(request)


# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@app.get("/api/auth/google")
async def auth_google():
    """
    Start the Google login.

    Sends the browser to Google's consent screen asking for read-only
    Gmail access, with offline access so we always get a refresh token.
    """
    return RedirectResponse(get_auth_url(), status_code=307)


@app.get("/auth/callback")
async def auth_callback(code: str = ""):
    """
    Google sends the user back here with ?code=...

    We swap the code for tokens, store them as http-only cookies and send
    the user to the dashboard. No code, or a failed swap → back to /.
    """
    if not code:
        return RedirectResponse("/", status_code=307)

    try:
        loop = asyncio.get_event_loop()
        tokens = await loop.run_in_executor(None, exchange_code, code)
    except Exception as e:
        print(f"[WARN] OAuth callback error: {e}")
        return RedirectResponse("/", status_code=307)

    response = RedirectResponse("/dashboard", status_code=307)
    if tokens.get("accessToken"):
        response.set_cookie(
            "access_token", tokens["accessToken"],
            httponly=True, secure=COOKIE_SECURE, samesite="lax",
            max_age=ACCESS_TOKEN_MAX_AGE,
        )
    if tokens.get("refreshToken"):
        response.set_cookie(
            "refresh_token", tokens["refreshToken"],
            httponly=True, secure=COOKIE_SECURE, samesite="lax",
            max_age=REFRESH_TOKEN_MAX_AGE,
        )
    return response


@app.get("/api/tokens")
async def get_tokens(request: Request):
    """
    Return the current session's tokens so the page knows whether the
    user is signed in. Missing cookies come back as null.
    """
    return {
        "accessToken": request.cookies.get("access_token") or None,
        "refreshToken": request.cookies.get("refresh_token") or None,
    }


@app.post("/api/auth/logout")
async def auth_logout():
    """Sign out by deleting both token cookies."""
    response = JSONResponse({"status": "success", "message": "Logged out successfully"})
    response.delete_cookie("access_token")
    response.delete_cookie("refresh_token")
    return response


@app.get("/api/health")
async def health():
    return {
        "status": "ok",
        "openrouter": base_agent.USE_OPENROUTER,
        "anthropic": base_agent.USE_ANTHROPIC,
    }


# ============================================================================
# QUERY ENDPOINT
# ============================================================================

@app.post("/api/query")
async def query_inbox(req: QueryRequest):
    """
    Answer a question about the user's inbox.

    The page sends:
        {"query": "what did I spend on flights?",
         "token": {"accessToken": "...", "refreshToken": "..."}}
    and gets back:
        {"answer": "...", "emails": ["From: ...", ...]}

    Failures still return {"answer": ..., "error": ...}:
        401 no/invalid token, 403 Gmail scope too narrow, 500 anything else.
    """
    # Signed-out callers get 401 whatever else is wrong with the request.
    if not req.token:
        return _error_response(401, AuthenticationError.answer, "Authentication required")

    if not req.query.strip():
        return _error_response(400, "Please enter a question.", "Query cannot be empty")

    if req.mode not in MODES:
        return _error_response(400, "Unknown query mode.", f"mode must be one of {list(MODES)}")

    token = req.token.model_dump()

    # The agent makes blocking HTTP calls (Google, the LLM) and may sleep
    # between retries, so it runs in a worker thread to keep the server
    # responsive for other requests.
    try:
        loop = asyncio.get_event_loop()
        result = await loop.run_in_executor(
            None, orchestrator.answer_query, req.query, token, req.mode
        )
    except InboxAgentError as e:
        print(f"[ERROR] {type(e).__name__}: {e}")
        return _error_response(e.http_status, e.answer, str(e))
    except Exception as e:
        print(f"[ERROR] Unexpected failure: {e}")
        return _error_response(500, GENERIC_ANSWER, str(e))

    return result.to_dict()


# ============================================================================
# PAGES
# ============================================================================

SIGN_IN_PAGE = """<!doctype html>
<html><head><title>Inbox Query Agent</title></head>
<body>
  <h1>Inbox Query Agent</h1>
  <p>Ask questions about your Gmail inbox.</p>
  <a href="/api/auth/google">Sign in with Google</a>
</body></html>"""

DASHBOARD_PAGE = """<!doctype html>
<html><head><title>Inbox Query Agent</title></head>
<body>
  <h1>Ask your inbox</h1>
  <form id="ask"><input id="q" size="60" autofocus> <button>Ask</button></form>
  <pre id="out"></pre>
  <script>
    document.getElementById('ask').onsubmit = async (e) => {
      e.preventDefault();
      const token = await (await fetch('/api/tokens')).json();
      const res = await fetch('/api/query', {
        method: 'POST',
        headers: {'Content-Type': 'application/json'},
        body: JSON.stringify({query: document.getElementById('q').value, token}),
      });
      const data = await res.json();
      document.getElementById('out').textContent =
        data.answer + '\\n\\n' + (data.emails || []).join('\\n\\n---\\n\\n');
    };
  </script>
</body></html>"""


@app.get("/", response_class=HTMLResponse)
async def sign_in_page():
    return SIGN_IN_PAGE


@app.get("/dashboard", response_class=HTMLResponse)
async def dashboard_page():
    return DASHBOARD_PAGE
