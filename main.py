#!/usr/bin/env python3
"""
Recruit Copilot - conversational assistant for the recruitment CRM.

Serve the HTTP API, mint a session token for local testing, or run a single
chat turn against the in-process demo dataset.
"""

import argparse
import json
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep copilot imports lazy (inside functions) so `--mint-session` does not
# pull in FastAPI / LangGraph.
#


def mint_session(*, user_id: str, organization_id: str, role: str, name: str) -> int:
    """Print a signed session token usable as `Authorization: Bearer <token>`."""
    from copilot.auth.config import load_auth_config
    from copilot.auth.models import CopilotCaller, normalize_role
    from copilot.auth.session import encode_session

    cfg = load_auth_config()
    token = encode_session(
        cfg,
        CopilotCaller(user_id=user_id, organization_id=organization_id, role=normalize_role(role), name=name),
    )
    if token is None:
        print("AUTH_SESSION_SECRET is not set; cannot mint a session.", file=sys.stderr)
        return 2
    print(token)
    return 0


def chat_once(
    message: str,
    *,
    path: str,
    user_id: str,
    organization_id: str,
    role: str,
    name: str,
    dump_json: bool = False,
) -> None:
    """Run one chat turn against the demo dataset and print the reply."""
    from copilot.auth.models import CopilotCaller, normalize_role
    from copilot.authz.policy import load_copilot_policy
    from copilot.chat.runtime import run_chat
    from copilot.memory.conversations import ConversationStore
    from copilot.storage.demo_data import seed_demo
    from copilot.storage.memory_store import InMemoryRecordStore

    store = InMemoryRecordStore()
    seed_demo(store, organization_id)
    caller = CopilotCaller(user_id=user_id, organization_id=organization_id, role=normalize_role(role), name=name)

    res = run_chat(
        policy=load_copilot_policy(),
        store=store,
        conversations=ConversationStore(max_conversations_per_user=5, max_messages_per_conversation=50),
        caller=caller,
        message=message,
        current_path=path,
    )
    if dump_json:
        payload = {
            "conversationId": res.conversation_id,
            "message": res.message.model_dump(mode="json", by_alias=True),
            "requiresConfirmation": res.requires_confirmation,
            "pendingAction": res.pending_action.model_dump(mode="json", by_alias=True) if res.pending_action else None,
        }
        print(json.dumps(payload, indent=2, sort_keys=False))
        return

    print(res.message.content)
    if res.requires_confirmation and res.pending_action is not None:
        print(f"\n[pending action {res.pending_action.id}: {res.pending_action.description}]")


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Recruit Copilot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the HTTP API
  python main.py --serve --port 8080

  # Mint a session token (needs AUTH_SESSION_SECRET)
  python main.py --mint-session --user u-1 --org org-1 --role recruiter

  # One chat turn against demo data
  python main.py --chat "show me active jobs"
  python main.py --chat "add a note saying strong Python" --path /candidates/c-42
        """,
    )

    parser.add_argument("--serve", action="store_true", help="Run the copilot HTTP API")
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Server listen port (default: 8080)")
    parser.add_argument("--mint-session", action="store_true", help="Print a signed session token and exit")
    parser.add_argument("--chat", metavar="MESSAGE", help="Run one chat turn against the in-process demo dataset")
    parser.add_argument("--path", default="/dashboard", help="Page path the user is on (for --chat)")

    # Caller identity (for --mint-session / --chat)
    parser.add_argument("--user", default="u-demo", help="User id (default: u-demo)")
    parser.add_argument("--org", default="org-demo", help="Organization id (default: org-demo)")
    parser.add_argument(
        "--role", default="recruiter", choices=["admin", "recruiter", "client"], help="Caller role (default: recruiter)"
    )
    parser.add_argument("--name", default="", help="Display name used as note author")
    parser.add_argument("--dump-json", action="store_true", help="Print the chat response as JSON (for --chat)")

    args = parser.parse_args()

    try:
        if args.serve:
            from copilot.api.server import run as run_server

            run_server(host=args.host, port=args.port)
            return

        if args.mint_session:
            sys.exit(mint_session(user_id=args.user, organization_id=args.org, role=args.role, name=args.name))

        if args.chat:
            chat_once(
                args.chat,
                path=args.path,
                user_id=args.user,
                organization_id=args.org,
                role=args.role,
                name=args.name,
                dump_json=args.dump_json,
            )
            return

        parser.print_help()

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        raise


if __name__ == "__main__":
    main()
