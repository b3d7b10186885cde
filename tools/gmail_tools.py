# tools/gmail_tools.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# Everything that talks to Google. No artificial intelligence in here,
# just plumbing:
#
#   1. OAuth: build the consent-screen URL, swap the returned "code" for
#      tokens, refresh an expired access token
#   2. Gmail service: open a Gmail API connection from a token pair
#      (web mode) or from a token saved on disk (terminal mode)
#   3. Search: run a search with a three-step fallback ladder and turn the
#      first few hits into email summaries
#
# Google's own exceptions are translated into our error types
# (agents/errors.py) right here, so nothing above this file needs to know
# what an HttpError is.
# ============================================================================

import re
import pickle

# Google's official libraries.
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow, InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from config.settings import (
    GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, GOOGLE_AUTH_URI, GOOGLE_TOKEN_URI,
    REDIRECT_URI, GMAIL_SCOPES, CREDENTIALS_PATH, TOKEN_PATH,
    SEARCH_MAX_RESULTS, SEARCH_MAX_EMAILS, GMAIL_OPERATORS,
)
from agents.errors import AuthenticationError, UpstreamScopeError, MailStoreError
from tools.email_parser import parse_message


# Matches "from:alice", "newer_than:7d", "label:work" ...
_OPERATOR_RE = re.compile(r'\b(?:' + '|'.join(GMAIL_OPERATORS) + r'):\S+')

# Anything that isn't a letter, digit, underscore or whitespace.
_PUNCTUATION_RE = re.compile(r'[^\w\s]')


# ── OAUTH (web mode) ───────────────────────────────────────────────────

def _client_config() -> dict:
    """The same structure as a downloaded credentials.json "web" client."""
    return {
        "web": {
            "client_id": GOOGLE_CLIENT_ID,
            "client_secret": GOOGLE_CLIENT_SECRET,
            "auth_uri": GOOGLE_AUTH_URI,
            "token_uri": GOOGLE_TOKEN_URI,
            "redirect_uris": [REDIRECT_URI],
        }
    }


def _make_flow() -> Flow:
    # The consent redirect and the callback are two separate requests, so
    # a PKCE verifier generated in the first would be lost by the second.
    return Flow.from_client_config(
        _client_config(),
        scopes=GMAIL_SCOPES,
        redirect_uri=REDIRECT_URI,
        autogenerate_code_verifier=False,
    )


def get_auth_url() -> str:
    """
    Build the Google consent-screen URL.

    access_type=offline + prompt=consent makes Google hand out a refresh
    token on EVERY login, not just the first one.
    """
    url, _state = _make_flow().authorization_url(
        access_type='offline',
        prompt='consent',
        include_granted_scopes='false',
    )
    return url


def exchange_code(code: str) -> dict:
    """
    Swap the one-time authorization code for a token pair.

    Returns:
        {"accessToken": "...", "refreshToken": "..." or None}

    Raises:
        AuthenticationError if Google rejects the code.
    """
    flow = _make_flow()
    try:
        flow.fetch_token(code=code)
    except Exception as e:
        # oauthlib raises its own family of errors for bad/expired codes.
        raise AuthenticationError(f"Authorization code exchange failed: {e}") from e

    creds = flow.credentials
    return {"accessToken": creds.token, "refreshToken": creds.refresh_token}


def refresh_credentials(access_token: str, refresh_token: str) -> Credentials:
    """
    Build Google credentials from a token pair and refresh them right away.

    We always refresh: the access token from the browser cookie might be
    up to an hour old and we can't tell how stale it is.

    Raises:
        AuthenticationError if there's no refresh token or Google refuses it.
    """
    if not refresh_token:
        raise AuthenticationError("Refresh token is missing")

    creds = Credentials(
        token=access_token or None,
        refresh_token=refresh_token,
        token_uri=GOOGLE_TOKEN_URI,
        client_id=GOOGLE_CLIENT_ID,
        client_secret=GOOGLE_CLIENT_SECRET,
        scopes=GMAIL_SCOPES,
    )
    try:
        creds.refresh(Request())
    except RefreshError as e:
        raise AuthenticationError(f"Token refresh failed: {e}") from e

    print("[*] Access token refreshed")
    return creds


def build_gmail_service(creds: Credentials):
    """Open a Gmail API "service" object for the given credentials."""
    return build('gmail', 'v1', credentials=creds, cache_discovery=False)


# ── LOCAL TOKEN (terminal mode) ────────────────────────────────────────

def get_local_gmail_service():
    """
    Log into Gmail from the terminal and return a service object.

    FIRST TIME: opens your browser on Google's consent page (needs
    config/credentials.json from Google Cloud Console), then saves the
    token to config/token.pickle.
    AFTER THAT: loads the saved token and silently refreshes it if needed.
    """
    creds = None

    if TOKEN_PATH.exists():
        with open(TOKEN_PATH, 'rb') as token_file:
            creds = pickle.load(token_file)

    if not creds or not creds.valid:
        if creds and creds.expired and creds.refresh_token:
            print("[*] Refreshing expired Gmail token...")
            try:
                creds.refresh(Request())
            except RefreshError as e:
                raise AuthenticationError(f"Token refresh failed: {e}") from e
        else:
            if not CREDENTIALS_PATH.exists():
                raise FileNotFoundError(
                    f"Gmail credentials not found at {CREDENTIALS_PATH}\n"
                    "   Download from Google Cloud Console → APIs & Services → Credentials"
                )
            print("[*] Opening browser for Gmail authentication...")
            flow = InstalledAppFlow.from_client_secrets_file(str(CREDENTIALS_PATH), GMAIL_SCOPES)
            creds = flow.run_local_server(port=0)

        TOKEN_PATH.parent.mkdir(parents=True, exist_ok=True)
        with open(TOKEN_PATH, 'wb') as token_file:
            pickle.dump(creds, token_file)
        print("[OK] Gmail authentication successful!")

    return build_gmail_service(creds)


# ── ERROR TRANSLATION ──────────────────────────────────────────────────

def translate_http_error(e: HttpError) -> Exception:
    """
    Turn a Gmail HttpError into one of our error types.

      403 + something about scopes/permissions → UpstreamScopeError
      401                                      → AuthenticationError
      anything else                            → MailStoreError
    """
    status = getattr(e.resp, 'status', None)
    content = e.content.decode('utf-8', errors='replace') if isinstance(e.content, bytes) else str(e.content)
    text = f"{e} {content}".lower()

    if status == 403 and ('scope' in text or 'insufficientpermissions' in text):
        return UpstreamScopeError(f"Insufficient OAuth scopes: {e}")
    if status == 401:
        return AuthenticationError(f"Gmail rejected the access token: {e}")
    return MailStoreError(f"Gmail API error ({status}): {e}")


# ── SEARCH ─────────────────────────────────────────────────────────────

def has_operators(query: str) -> bool:
    """True if the query uses Gmail operators like from: or newer_than:."""
    return bool(_OPERATOR_RE.search(query))


def search_tiers(query: str) -> list[str]:
    """
    The fallback ladder for one search, strictest first.

      1. The exact phrase: "prime video" (in quotes). Queries with Gmail
         operators go through untouched instead.
      2. Every word longer than one character, OR'd: prime OR video
      3. Just the first of those words: prime

    A tier that would repeat the previous one is left out.
    """
    query = query.strip()
    tiers = [query if has_operators(query) else f'"{query}"']

    terms = [t for t in _PUNCTUATION_RE.sub(' ', query).split() if len(t) > 1]
    if terms:
        for tier in (' OR '.join(terms), terms[0]):
            if tier != tiers[-1]:
                tiers.append(tier)
    return tiers


def _list_message_ids(service, q: str) -> list[str]:
    try:
        response = service.users().messages().list(
            userId='me', q=q, maxResults=SEARCH_MAX_RESULTS
        ).execute()
    except HttpError as e:
        raise translate_http_error(e) from e
    return [m['id'] for m in response.get('messages') or []]


def search_emails(service, query: str) -> list[str]:
    """
    Search Gmail and return up to SEARCH_MAX_EMAILS email summaries.

    Walks the fallback ladder (see search_tiers) and stops at the first
    tier that finds anything. Message ids are de-duplicated, then fetched
    one by one in Gmail's order until we have enough summaries.

    Returns:
        A list of summary strings. Empty (not an error) if nothing matched.

    Raises:
        UpstreamScopeError / AuthenticationError / MailStoreError when
        Gmail itself fails.
    """
    ids = []
    for tier_num, q in enumerate(search_tiers(query), start=1):
        print(f"[SEARCH] Tier {tier_num}: q={q!r}")
        ids = _list_message_ids(service, q)
        if ids:
            break

    if not ids:
        print("   No messages found.")
        return []

    seen = set()
    emails = []
    for message_id in ids:
        if message_id in seen:
            continue
        seen.add(message_id)

        try:
            msg = service.users().messages().get(
                userId='me', id=message_id, format='full'
            ).execute()
        except HttpError as e:
            error = translate_http_error(e)
            if not isinstance(error, MailStoreError):
                raise error from e
            # One broken message shouldn't sink the whole search.
            print(f"   [WARN] Error fetching message {message_id}: {e}")
            continue

        emails.append(parse_message(msg))
        if len(emails) >= SEARCH_MAX_EMAILS:
            break

    print(f"[OK] Found {len(emails)} emails from search")
    return emails
