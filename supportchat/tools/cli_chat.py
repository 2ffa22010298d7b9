#!/usr/bin/env python3
import argparse, requests, sys, time

def _headers(token):
    return {"Authorization": f"Bearer {token}"}

def post(base, path, token, payload=None):
    r = requests.post(f"{base}{path}", json=payload or {}, headers=_headers(token), timeout=30)
    r.raise_for_status()
    return r.json().get("data") or {}

def get(base, path, token, params=None):
    r = requests.get(f"{base}{path}", params=params, headers=_headers(token), timeout=30)
    r.raise_for_status()
    return r.json().get("data") or {}

def format_message(m):
    who = "SUPPORT" if m.get("senderType") == "admin" else "YOU"
    body = m.get("text") or (f"[image] {m.get('imageUrl')}" if m.get("imageUrl") else "")
    return f"[{who}] {body}"

def print_new(messages, seen):
    for m in messages:
        if m.get("id") in seen:
            continue
        seen.add(m.get("id"))
        print(format_message(m))

def main():
    p = argparse.ArgumentParser(description="Terminal client for the support chat (user side).")
    p.add_argument("--base", default="http://127.0.0.1:8000", help="API base URL")
    p.add_argument("--token", required=True, help="User bearer token")
    p.add_argument("--limit", type=int, default=50, help="History page size")
    args = p.parse_args()

    try:
        thread_id = post(args.base, "/api/chat/thread", args.token)["threadId"]
    except Exception as e:
        print(f"[error opening thread] {e}")
        sys.exit(1)

    print(f"\n[thread {thread_id}]")
    seen = set()
    print_new(get(args.base, f"/api/chat/thread/{thread_id}/messages", args.token, {"limit": args.limit})["messages"], seen)

    print("\nType a message and hit Enter (empty line refreshes). Ctrl+C to quit.\n")
    while True:
        try:
            text = input("> ").strip()
            if text:
                try:
                    post(args.base, f"/api/chat/thread/{thread_id}/messages", args.token, {"text": text})
                except requests.HTTPError as he:
                    print(f"[server HTTP {he.response.status_code}] {he.response.text}")
                    continue
            msgs = get(args.base, f"/api/chat/thread/{thread_id}/messages", args.token, {"limit": args.limit})["messages"]
            print_new(msgs, seen)
        except KeyboardInterrupt:
            print("\nBye!")
            break
        except Exception as e:
            print(f"[runtime error] {e}")
            time.sleep(0.5)

if __name__ == "__main__":
    main()
