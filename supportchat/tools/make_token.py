#!/usr/bin/env python3
# Mint a chat token for local testing (signed with JWT_SECRET).
import argparse

from supportchat.auth import create_admin_token, create_user_token

def main(argv=None):
    p = argparse.ArgumentParser(description="Print a bearer token for the support chat.")
    p.add_argument("role", choices=["user", "admin"])
    p.add_argument("id", type=int)
    args = p.parse_args(argv)
    token = create_admin_token(args.id) if args.role == "admin" else create_user_token(args.id)
    print(token)
    return token

if __name__ == "__main__":
    main()
