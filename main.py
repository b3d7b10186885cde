# main.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# The "start button". Two ways to use it:
#
#   python main.py                       → start the web server
#   python main.py --port 3000           → ...on a different port
#   python main.py --host 0.0.0.0        → ...reachable from other devices
#   python main.py --ask "what did I spend on flights?"
#                                        → answer one question in the
#                                          terminal, no browser needed
#                                          (after the first Google login)
#
# Either way it first loads secrets from .env and checks an LLM API key
# is set.
# ============================================================================

import os
import sys
import argparse


# ── LOAD ENVIRONMENT VARIABLES ─────────────────────────────────────────
# Must happen before config.settings is imported anywhere, because
# settings reads the environment at import time.
from dotenv import load_dotenv
load_dotenv()


# ── CHECK FOR API KEY ──────────────────────────────────────────────────

if not os.environ.get('OPENROUTER_API_KEY') and not os.environ.get('ANTHROPIC_API_KEY'):
    print("Error: no LLM API key set.")
    print("   Create a .env file with: ANTHROPIC_API_KEY=sk-ant-your-key")
    print("   (or OPENROUTER_API_KEY=sk-or-your-key)")
    sys.exit(1)


def ask(question: str, mode: str):
    """Answer one question in the terminal and pretty-print the result."""
    from rich.console import Console
    from rich.panel import Panel

    from agents.errors import InboxAgentError
    from orchestrator import Orchestrator

    console = Console()
    try:
        result = Orchestrator().ask_local(question, mode=mode)
    except InboxAgentError as e:
        console.print(Panel(f"{e.answer}\n\n[dim]{e}[/dim]", title="Error", border_style="red"))
        sys.exit(1)

    console.print(Panel(result.answer, title="Answer", border_style="green"))
    for idx, email in enumerate(result.emails, start=1):
        console.print(Panel(email, title=f"Email #{idx}", border_style="blue"))


def main():
    """Parse command-line arguments, then answer a question or start the server."""
    parser = argparse.ArgumentParser(
        description="Inbox Query Agent: ask natural-language questions about your Gmail inbox"
    )
    parser.add_argument(
        '--port', type=int, default=8000,
        help="Port to run the web server on (default: 8000)"
    )
    parser.add_argument(
        '--host', type=str, default='127.0.0.1',
        help="Host to bind to. Use 0.0.0.0 for network access (default: 127.0.0.1)"
    )
    parser.add_argument(
        '--ask', type=str, metavar='QUESTION',
        help="Answer one question in the terminal instead of starting the server"
    )
    parser.add_argument(
        '--mode', choices=['agent', 'one_shot'], default='agent',
        help="'agent' searches iteratively (default); 'one_shot' does a single search"
    )
    args = parser.parse_args()

    if args.ask:
        ask(args.ask, args.mode)
        return

    import uvicorn

    print()
    print("  ===========================================")
    print("        Inbox Query Agent                   ")
    print("  ===========================================")
    print(f"   http://{args.host}:{args.port}              ")
    print("   Press Ctrl+C to stop                     ")
    print("  ===========================================")
    print()

    uvicorn.run(
        "web.app:app",
        host=args.host,
        port=args.port,
        reload=False,
        log_level="info"
    )


if __name__ == "__main__":
    main()
