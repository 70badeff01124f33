#!/usr/bin/env python3
"""
Generate API keys for principals.
Prints keys, or stores one for an existing user: generate_api_key.py <username>
"""

import secrets
import string
import sys


def generate_api_key(prefix="dfm", length=32):
    """Generate a secure random API key."""
    chars = string.ascii_letters + string.digits
    random_part = ''.join(secrets.choice(chars) for _ in range(length))
    return f"{prefix}_{random_part}"


def generate_multiple_keys(count=5):
    """Generate multiple API keys."""
    return [generate_api_key() for _ in range(count)]


def assign_api_key(engine, username: str) -> str:
    """Store a fresh key on *username* and return it."""
    from sqlalchemy import update

    from datafilter.database import principals

    key = generate_api_key()
    with engine.begin() as conn:
        result = conn.execute(
            update(principals).where(principals.c.username == username).values(api_key=key)
        )
    if result.rowcount != 1:
        raise ValueError(f"No principal named '{username}'")
    return key


if __name__ == "__main__":
    print("=" * 70)
    print("Data Filter API Key Generator")
    print("=" * 70)
    print()

    if len(sys.argv) > 1:
        from datafilter.database import init_engine

        username = sys.argv[1]
        try:
            key = assign_api_key(init_engine(), username)
        except ValueError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            sys.exit(1)
        print(f"New key for {username}:")
        print(f"  {key}")
        sys.exit(0)

    print("Multiple API Keys (5):")
    print("-" * 70)
    for i, key in enumerate(generate_multiple_keys(5), 1):
        print(f"  {i}. {key}")
    print()
    print("Pass a username to store a new key for that user.")
    print("=" * 70)
