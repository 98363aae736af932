"""CLI entry point for the onyxgpt package."""

from __future__ import annotations

import json
import os
import platform
import shutil
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List

# OpenRouter: one API key for many models (OpenAI, Claude, Gemini, etc.)
OPENROUTER_KEYS_URL = "https://openrouter.ai/keys"
MIN_PYTHON = (3, 10)
DEFAULT_LOG_LINES = 20


def _print_setup_banner(
    provider: str,
    port: int,
    *,
    for_startup: bool = True,
) -> None:
    """Print setup instructions. If for_startup, show 'server started' line; else show 'Setup' header."""
    provider_note = "no API key required" if provider == "stub" else "API key from .env"
    base = f"http://localhost:{port}"
    print()
    if for_startup:
        print("✅ OnyxGPT core started, provider: {} ({})".format(provider, provider_note))
    else:
        print("OnyxGPT Setup")
        print("Provider: {} ({})".format(provider, provider_note))
    print()
    print("Docs:     {}/docs".format(base))
    print("Health:   {}/health".format(base))
    print("Logs:     {}/logs".format(base))
    print()
    print("────────────────────────────────────────────")
    print("Get an API key from OpenRouter (one key for many models):")
    print("   {}".format(OPENROUTER_KEYS_URL))
    print()
    print("Copy the block below into .env and replace the placeholders.")
    print("   Leave the SUPABASE_* lines out to run without sign-in.")
    print()
    print("   AI_PROVIDER=openrouter")
    print("   OPENROUTER_API_KEY=YOUR_KEY_HERE")
    print("   OPENROUTER_MODEL=openai/gpt-4o-mini")
    print("   SUPABASE_URL=https://YOUR_PROJECT.supabase.co")
    print("   SUPABASE_ANON_KEY=YOUR_ANON_KEY")
    print("   SUPABASE_JWT_SECRET=YOUR_JWT_SECRET")
    print()
    print("Then restart: stop the server (Ctrl+C) and run onyxgpt again.")
    print()


def _python_version_str() -> str:
    return ".".join(str(part) for part in sys.version_info[:3])


def _print_help() -> None:
    print("OnyxGPT CLI")
    print()
    print("Usage:")
    print("  onyxgpt               Start the local API server")
    print("  onyxgpt setup         Print setup/env guidance")
    print("  onyxgpt doctor        Print install/environment diagnostics")
    print("  onyxgpt logs [N]      Print the N most recent API call log entries")
    print()


def _format_log_entry(entry: Dict[str, Any]) -> str:
    details = entry.get("details") or {}
    stamp = datetime.fromtimestamp(entry.get("timestamp", 0) / 1000, tz=timezone.utc)
    status = "ok " if details.get("success") else "ERR"
    line = "{}  {}  {:<24}  {:>6} ms".format(
        stamp.strftime("%Y-%m-%d %H:%M:%S"),
        status,
        str(details.get("method", entry.get("message", ""))),
        details.get("duration", "?"),
    )
    if not details.get("success") and details.get("error"):
        line += "  {}".format(details["error"])
    return line


def _print_logs(limit: int) -> None:
    from . import telemetry

    entries: List[Dict[str, Any]] = telemetry.get_logs(limit=limit)
    if not entries:
        print("No API calls logged yet.")
        return
    for entry in entries:
        print(_format_log_entry(entry))


def _print_doctor() -> None:
    from .config import get_settings

    settings = get_settings()
    print("OnyxGPT Doctor")
    print()
    print(f"Platform: {platform.platform()}")
    print(f"Python:   {_python_version_str()}")
    print(f"Exe:      {sys.executable}")
    print(f"In venv:  {'yes' if sys.prefix != sys.base_prefix else 'no'}")
    print(f"PATH bin: {shutil.which('onyxgpt') or 'not found'}")
    print(f"Provider: {settings.provider_name}")
    print(f"DB path:  {settings.db_path}")
    print(f"Auth:     {_auth_mode(settings)}")
    if sys.version_info < MIN_PYTHON:
        print(
            f"Issue: Python is below required minimum {MIN_PYTHON[0]}.{MIN_PYTHON[1]}."
        )
    if settings.provider_name == "openrouter" and not settings.openrouter_api_key:
        print("Issue: AI_PROVIDER=openrouter but OPENROUTER_API_KEY is not set (stub client in use).")


def _auth_mode(settings: Any) -> str:
    if settings.auth_token:
        return "static bearer token (AUTH_TOKEN)"
    if settings.supabase_jwt_secret:
        return "Supabase session tokens"
    return "disabled"


def main() -> None:
    """Run the API server or handle setup/doctor/logs commands."""
    from .config import get_settings

    port = int(os.environ.get("PORT", "4280"))
    host = os.environ.get("HOST", "127.0.0.1")
    settings = get_settings()

    if len(sys.argv) > 1:
        subcommand = sys.argv[1].strip().lower()
        if subcommand in {"-h", "--help", "help"}:
            _print_help()
            sys.exit(0)
        if subcommand == "setup":
            _print_setup_banner(
                provider=settings.provider_name,
                port=port,
                for_startup=False,
            )
            sys.exit(0)
        if subcommand == "doctor":
            _print_doctor()
            sys.exit(0)
        if subcommand == "logs":
            try:
                limit = int(sys.argv[2]) if len(sys.argv) > 2 else DEFAULT_LOG_LINES
            except ValueError:
                print("Error: logs expects a number of entries", file=sys.stderr)
                sys.exit(2)
            _print_logs(limit)
            sys.exit(0)
        if subcommand == "logs-json":
            from . import telemetry

            print(json.dumps(telemetry.get_logs(), indent=2))
            sys.exit(0)
        print(f"Unknown command: {subcommand}", file=sys.stderr)
        _print_help()
        sys.exit(2)

    import uvicorn

    _print_setup_banner(
        provider=settings.provider_name,
        port=port,
        for_startup=True,
    )

    uvicorn.run(
        "onyxgpt.main:app",
        host=host,
        port=port,
        factory=False,
    )


if __name__ == "__main__":
    main()
    sys.exit(0)
