# config/settings.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the "control panel" for the entire project. Every setting that
# might change (API keys, model names, retry limits, search sizes, cookie
# lifetimes) lives here in one place. If you need to tune something, you
# change it here instead of hunting through the agents and tools.
#
# Secrets are read from environment variables. main.py loads them from a
# .env file before anything else is imported.
# ============================================================================

# "os" lets us read "environment variables" (secret values like API keys
# that we keep outside our code).
import os

# "Path" makes file and folder paths work the same on Windows, Mac, Linux.
from pathlib import Path


# ── FILE PATHS ─────────────────────────────────────────────────────────

# The top-level folder of the project:
#   settings.py → config/ → project root
PROJECT_ROOT = Path(__file__).parent.parent

# Where configuration files live (this folder).
CONFIG_DIR = PROJECT_ROOT / "config"

# Only used by terminal mode (python main.py --ask ...). The web server
# never touches these files; its tokens live in browser cookies.
CREDENTIALS_PATH = CONFIG_DIR / "credentials.json"
TOKEN_PATH = CONFIG_DIR / "token.pickle"


# ── LLM (Large Language Model) SETTINGS ────────────────────────────────
# The "reasoning service" that decides what the agent does next.
# OpenRouter is tried first when configured; Anthropic is the fallback.

OPENROUTER_API_KEY = os.environ.get("OPENROUTER_API_KEY", "")
OPENROUTER_BASE_URL = os.environ.get("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
OPENROUTER_MODEL = os.environ.get("OPENROUTER_MODEL", "anthropic/claude-3.5-sonnet")

ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
ANTHROPIC_MODEL = os.environ.get("ANTHROPIC_MODEL", "claude-3-5-sonnet-20241022")

# Decisions are tiny JSON objects, so responses are kept short.
# Extraction and final-answer calls reuse the same limit.
MAX_TOKENS = int(os.environ.get("MAX_TOKENS", "300"))

# Slightly above the default so repeated searches get some variety.
AGENT_TEMPERATURE = 0.7


# ── RETRY SETTINGS ─────────────────────────────────────────────────────
# How we retry when the LLM provider says "I'm overloaded".
# Exponential backoff: the wait doubles on every attempt, is capped at
# API_RETRY_MAX_DELAY, and gets up to API_RETRY_JITTER seconds of random
# noise so many clients don't retry at exactly the same moment.
#
# With 3 attempts, base 1s: wait ~2s after the 1st failure, ~4s after the
# 2nd, then give up.

# Total attempts (the first call counts as attempt 1).
API_MAX_RETRIES = 3

API_RETRY_BASE_DELAY = 1.0
API_RETRY_MAX_DELAY = 10.0
API_RETRY_JITTER = 1.0

# 429 = rate limited, 529 = Anthropic "overloaded".
# OpenRouter also passes through gateway errors (502/503) when the
# upstream model is busy.
ANTHROPIC_RETRYABLE_STATUS = (429, 529)
OPENROUTER_RETRYABLE_STATUS = (429, 502, 503, 529)


# ── GOOGLE / GMAIL SETTINGS ────────────────────────────────────────────

GOOGLE_CLIENT_ID = os.environ.get("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.environ.get("GOOGLE_CLIENT_SECRET", "")
GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

# The public URL of this app. Google redirects back to
# APP_URL + "/auth/callback" after the consent screen.
APP_URL = os.environ.get("APP_URL", "http://localhost:8000").rstrip("/")
REDIRECT_URI = f"{APP_URL}/auth/callback"

# "gmail.readonly" means we can READ emails but never modify, delete or
# send anything.
GMAIL_SCOPES = ['https://www.googleapis.com/auth/gmail.readonly']


# ── SESSION COOKIES ────────────────────────────────────────────────────

# Access tokens from Google live about an hour.
ACCESS_TOKEN_MAX_AGE = 3600

# Refresh tokens are kept for 30 days.
REFRESH_TOKEN_MAX_AGE = 30 * 24 * 60 * 60

# Cookies are only marked "secure" (HTTPS-only) in production, otherwise
# local development over http://localhost would lose them.
COOKIE_SECURE = os.environ.get("APP_ENV", "development") == "production"


# ── AGENT LOOP SETTINGS ────────────────────────────────────────────────

# Hard ceiling on decide/act rounds per question. The last round is
# forced to produce a final answer.
MAX_ITERATIONS = 5

# How many previously seen emails to show the agent (or return to the
# user) when the latest search came back empty.
FALLBACK_EMAIL_COUNT = 5


# ── SEARCH SETTINGS ────────────────────────────────────────────────────

# How many message ids to ask Gmail for per search.
SEARCH_MAX_RESULTS = 8

# How many of those we actually download and summarize.
SEARCH_MAX_EMAILS = 5

# Gmail search operators. A query containing any of these is passed to
# Gmail untouched; wrapping it in quotes would turn the operator into
# plain text.
GMAIL_OPERATORS = [
    'from', 'to', 'subject', 'after', 'before',
    'newer_than', 'older_than', 'in', 'has', 'is', 'label',
]


# ── PARSER SETTINGS ────────────────────────────────────────────────────

# Email content is cut to this many characters before it goes anywhere
# near a prompt.
SNIPPET_LENGTH = 200
