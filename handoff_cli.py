#!/usr/bin/env python3
# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0
"""
Handoff CLI - Log a detached client in through a browser OAuth login

Usage:
    # Start a login: creates a nonce, opens the browser, then asks for the
    # deep link the server redirected to
    handoff_cli.py login --provider google

    # Redeem a deep link (or a bare signed nonce) obtained elsewhere
    handoff_cli.py redeem "handoff://oauth/callback?message=LOGIN_SUCCESS&nonce=..."

    handoff_cli.py whoami
    handoff_cli.py logout

Environment Variables:
    HANDOFF_BASE_URL - Default base URL (can be overridden with --base-url)
    HANDOFF_TENANT   - Tenant sent in the X-Tenant header
"""

import argparse
import http.client
import json
import os
import sys
import urllib.parse
import webbrowser
from pathlib import Path
from typing import Optional, Dict, Any

# Global session state
SESSION_COOKIE: Optional[str] = None
BASE_URL: str = ""  # Will be set from CLI or environment
TENANT: Optional[str] = None
COOKIE_NAME = "session"

# Session file location
SESSION_DIR = Path.home() / ".handoff"
SESSION_FILE = SESSION_DIR / "session.json"


def load_session():
    """Load session cookie, base URL and tenant from file if it exists.

    Returns:
        dict: Session data including base_url, session_cookie, tenant and email (if available)
    """
    global SESSION_COOKIE, BASE_URL, TENANT
    if SESSION_FILE.exists():
        try:
            with open(SESSION_FILE, 'r') as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError):
            return {}
        if not BASE_URL and data.get('base_url'):
            BASE_URL = data.get('base_url')
        # Cookie only applies to the server and tenant it came from
        if data.get('base_url') == BASE_URL:
            if not TENANT:
                TENANT = data.get('tenant')
            if data.get('tenant') == TENANT:
                SESSION_COOKIE = data.get('session_cookie')
        return data
    return {}


def save_session(email: str = None):
    """Save session cookie, base URL and tenant to file.

    Args:
        email: Optional email to save with session
    """
    if SESSION_COOKIE:
        SESSION_DIR.mkdir(parents=True, exist_ok=True)
        try:
            session_data = {
                'base_url': BASE_URL,
                'session_cookie': SESSION_COOKIE,
                'tenant': TENANT
            }
            if email:
                session_data['email'] = email

            with open(SESSION_FILE, 'w') as f:
                json.dump(session_data, f)
            # Owner read/write only
            SESSION_FILE.chmod(0o600)
        except IOError as e:
            print(f"Warning: Could not save session: {e}", file=sys.stderr)


def clear_session():
    """Clear saved session file."""
    if SESSION_FILE.exists():
        try:
            SESSION_FILE.unlink()
        except IOError as e:
            print(f"Warning: Could not clear session file: {e}", file=sys.stderr)


def extract_signed_nonce(value: str) -> Optional[str]:
    """Pull the signed nonce out of a pasted deep link.

    Accepts either the full callback link (``...?message=...&nonce=...``)
    or the bare signed nonce.

    Returns:
        The signed nonce, or None if the link carries none
    """
    value = (value or "").strip()
    if not value:
        return None

    parsed = urllib.parse.urlparse(value)
    if parsed.query:
        params = urllib.parse.parse_qs(parsed.query)
        nonces = params.get("nonce")
        return nonces[0] if nonces else None
    if parsed.scheme:
        return None
    return value


def extract_message(value: str) -> Optional[str]:
    """Return the ?message= status code from a pasted deep link, if any."""
    parsed = urllib.parse.urlparse((value or "").strip())
    messages = urllib.parse.parse_qs(parsed.query).get("message")
    return messages[0] if messages else None


def redirect_url(provider: str, nonce: str) -> str:
    """Build the server URL that starts the provider login for a nonce."""
    query = urllib.parse.urlencode({"nonce": nonce})
    provider = urllib.parse.quote(provider, safe="")
    return f"{BASE_URL}/api/v1/auth/oauth/{provider}/redirect?{query}"


def get_connection():
    """Create HTTP/HTTPS connection based on BASE_URL scheme."""
    parsed = urllib.parse.urlparse(BASE_URL)
    if parsed.scheme == "https":
        return http.client.HTTPSConnection(parsed.netloc)
    elif parsed.scheme == "http":
        return http.client.HTTPConnection(parsed.netloc)
    else:
        print(f"Error: Unsupported scheme in base URL: {parsed.scheme}", file=sys.stderr)
        sys.exit(1)


def error_message(content: str) -> str:
    """Pick the human-readable part of an error body."""
    try:
        error_data = json.loads(content)
    except json.JSONDecodeError:
        return content
    if not isinstance(error_data, dict):
        return content
    if "message" in error_data:
        return f"{error_data.get('error', 'ERROR')}: {error_data['message']}"
    return str(error_data.get("detail", content))


def make_request(
    method: str,
    endpoint: str,
    body: Optional[Dict[str, Any]] = None,
    require_auth: bool = False
) -> Dict[str, Any]:
    """Make HTTP request to the handoff API.

    Args:
        method: HTTP method (GET, POST, ...)
        endpoint: API endpoint path below /api/v1/
        body: Optional request body (will be JSON encoded)
        require_auth: If True, fail if no session is available

    Returns:
        Parsed JSON response
    """
    global SESSION_COOKIE

    conn = get_connection()
    path = urllib.parse.urljoin("/api/v1/", endpoint.lstrip("/"))
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json",
    }
    if TENANT:
        headers["X-Tenant"] = TENANT

    if SESSION_COOKIE:
        headers["Cookie"] = f"{COOKIE_NAME}={SESSION_COOKIE}"
    elif require_auth:
        print("Error: Not authenticated. Run 'login' first.", file=sys.stderr)
        sys.exit(1)

    body_str = json.dumps(body) if body else None

    try:
        conn.request(method, path, body=body_str, headers=headers)
        response = conn.getresponse()
        status = response.status
        content = response.read().decode("utf-8")

        # "session=VALUE; HttpOnly; ..." -> VALUE
        set_cookie = response.getheader("set-cookie")
        if set_cookie:
            for part in set_cookie.split(";"):
                part = part.strip()
                if part.startswith(f"{COOKIE_NAME}="):
                    SESSION_COOKIE = part.split("=", 1)[1] or None
                    break

        if 200 <= status < 300:
            return json.loads(content) if content.strip() else {}
        print(f"Error: HTTP {status}: {error_message(content)}", file=sys.stderr)
        sys.exit(1)
    except http.client.HTTPException as e:
        print(f"HTTP request failed: {e}", file=sys.stderr)
        sys.exit(1)
    except ConnectionError as e:
        print(f"Connection failed: {e}", file=sys.stderr)
        print(f"Check that the server is running at {BASE_URL}", file=sys.stderr)
        sys.exit(1)
    finally:
        conn.close()


def create_nonce() -> str:
    """Ask the server for a fresh client nonce and print it."""
    data = make_request("POST", "/auth/oauth/nonce")
    nonce = data.get("nonce")
    if not nonce:
        print("Error: Server returned no nonce", file=sys.stderr)
        sys.exit(1)
    print(nonce)
    return nonce


def redeem(link: str = None):
    """Exchange a signed nonce (or the deep link carrying it) for a session.

    Args:
        link: Deep link or bare signed nonce (will prompt if not provided)
    """
    if not link:
        link = input("Paste the link the browser was sent to: ").strip()

    message = extract_message(link)
    if message and message != "LOGIN_SUCCESS":
        print(f"Error: Login failed on the server: {message}", file=sys.stderr)
        sys.exit(1)

    signed_nonce = extract_signed_nonce(link)
    if not signed_nonce:
        print("Error: No nonce found in the link", file=sys.stderr)
        sys.exit(1)

    data = make_request("POST", "/auth/oauth/redeem", body={"nonce": signed_nonce})
    user = data.get("user") or {}
    print("✓ Login successful!")
    print(f"  User: {user.get('email', 'Unknown')}")
    if user.get('id'):
        print(f"  User ID: {user.get('id')}")
    if not SESSION_COOKIE:
        print("⚠ Warning: No session cookie received. Authentication may have failed.", file=sys.stderr)
    else:
        save_session(email=user.get('email'))
        print(f"  Session saved to {SESSION_FILE}")
        print(f"  Base URL: {BASE_URL}")


def login(provider: str, open_browser: bool = True):
    """Run the full detached login.

    Args:
        provider: OAuth provider name (google, github, microsoft)
        open_browser: Open the login page in the local browser
    """
    data = make_request("POST", "/auth/oauth/nonce")
    nonce = data.get("nonce")
    if not nonce:
        print("Error: Server returned no nonce", file=sys.stderr)
        sys.exit(1)

    url = redirect_url(provider, nonce)
    print("Open this URL in a browser on any device to sign in:")
    print(f"  {url}")
    if open_browser:
        webbrowser.open(url)

    redeem()


def whoami():
    """Show the user behind the saved session."""
    data = make_request("GET", "/auth/me", require_auth=True)
    print(f"{data.get('email')}")
    if data.get('name'):
        print(f"  Name: {data.get('name')}")
    print(f"  User ID: {data.get('id')}")
    if TENANT:
        print(f"  Tenant: {TENANT}")


def logout():
    """End session."""
    global SESSION_COOKIE
    if not SESSION_COOKIE:
        print("No active session to logout.")
        return

    make_request("POST", "/auth/logout")
    SESSION_COOKIE = None
    clear_session()
    print("✓ Logged out successfully.")
    print(f"  Session cleared from {SESSION_FILE}")


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="OAuth handoff CLI for detached clients",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Examples:
  # Log in through Google in a browser
  handoff --base-url http://127.0.0.1:8000 login --provider google

  # Log in on a headless machine: print the URL, sign in on a phone,
  # then paste the link the phone was redirected to
  handoff login --provider github --no-browser

  # Redeem a link later
  handoff redeem "handoff://oauth/callback?message=LOGIN_SUCCESS&nonce=..."

  handoff whoami
  handoff logout

Environment Variables:
  HANDOFF_BASE_URL - Default base URL (can override with --base-url)
  HANDOFF_TENANT   - Tenant name sent as X-Tenant
"""
    )
    parser.add_argument(
        "--base-url", "-b",
        default=os.environ.get("HANDOFF_BASE_URL"),
        help="Base API URL (default: $HANDOFF_BASE_URL or saved session)"
    )
    parser.add_argument(
        "--tenant", "-t",
        default=os.environ.get("HANDOFF_TENANT"),
        help="Tenant name (default: $HANDOFF_TENANT or saved session)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", required=False)

    # === create-nonce ===
    nonce_parser = subparsers.add_parser("create-nonce", help="Create a client nonce")
    nonce_parser.set_defaults(func=lambda _: create_nonce())

    # === login ===
    login_parser = subparsers.add_parser(
        "login",
        help="Log in through an OAuth provider",
        description="Create a nonce, open the provider login and redeem the resulting link."
    )
    login_parser.add_argument("--provider", "-p", default="google", help="Provider name (default: google)")
    login_parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Only print the login URL"
    )
    login_parser.set_defaults(func=lambda args: login(
        provider=args.provider,
        open_browser=not args.no_browser
    ))

    # === redeem ===
    redeem_parser = subparsers.add_parser("redeem", help="Redeem a deep link or signed nonce")
    redeem_parser.add_argument("link", nargs="?", help="Deep link or signed nonce (will prompt if not provided)")
    redeem_parser.set_defaults(func=lambda args: redeem(args.link))

    # === whoami ===
    whoami_parser = subparsers.add_parser("whoami", help="Show the logged-in user")
    whoami_parser.set_defaults(func=lambda _: whoami())

    # === logout ===
    logout_parser = subparsers.add_parser(
        "logout",
        help="End current session",
        description="End the current session (clears session cookie)."
    )
    logout_parser.set_defaults(func=lambda _: logout())

    args = parser.parse_args()

    global BASE_URL, TENANT

    if args.base_url:
        BASE_URL = args.base_url.rstrip("/")
    if args.tenant:
        TENANT = args.tenant

    load_session()

    if not BASE_URL:
        print("Error: Base URL required. Use --base-url or set HANDOFF_BASE_URL", file=sys.stderr)
        sys.exit(1)

    if args.verbose:
        print(f"Base URL: {BASE_URL}", file=sys.stderr)
        if TENANT:
            print(f"Tenant: {TENANT}", file=sys.stderr)
        if SESSION_COOKIE:
            print(f"Using saved session from {SESSION_FILE}", file=sys.stderr)

    if hasattr(args, 'func'):
        args.func(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
