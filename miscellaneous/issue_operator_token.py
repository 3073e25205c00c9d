#!/usr/bin/env python3
"""
Issue a bearer token for a box-office terminal.

Usage:
    python miscellaneous/issue_operator_token.py <user_id> [terminal] [hours]
"""

import sys
from datetime import timedelta

from cinema_pos.utils.auth import create_operator_token, verify_token


def issue_token(user_id: str, terminal: str = None, hours: float = None) -> str:
    """Create a terminal token and return the encoded JWT."""
    expires_delta = timedelta(hours=hours) if hours else None
    token = create_operator_token(user_id, terminal=terminal, expires_delta=expires_delta)

    token_data = verify_token(token.access_token)
    print(f"Operator: {token_data.user_id}")
    print(f"Terminal: {token_data.terminal or '-'}")
    print(f"Hold owner: {token_data.holder}")
    print(f"Expires in: {token.expires_in} seconds")
    return token.access_token


def main():
    if len(sys.argv) < 2:
        print(__doc__.strip())
        sys.exit(1)

    user_id = sys.argv[1]
    terminal = sys.argv[2] if len(sys.argv) > 2 else None
    try:
        hours = float(sys.argv[3]) if len(sys.argv) > 3 else None
    except ValueError:
        print(f"Invalid hours value: {sys.argv[3]}")
        sys.exit(1)

    print(issue_token(user_id, terminal, hours))


if __name__ == "__main__":
    main()
