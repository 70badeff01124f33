#!/usr/bin/env python3
"""
Generate a secret key for API session tokens.
Run this and copy the output to your .env file.
"""

import secrets

if __name__ == "__main__":
    print("=" * 60)
    print("Data Filter JWT Secret Key Generator")
    print("=" * 60)

    print(f"\nJWT_SECRET_KEY={secrets.token_hex(32)}")
    print("# DATAFILTER_DISABLED_TYPES=")
    print("# DATAFILTER_BYPASS_PRIVILEGE=Bypass Location Filter")

    print("\n" + "=" * 60)
    print("Copy the lines above to your .env file")
    print("=" * 60)
