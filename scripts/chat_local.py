#!/usr/bin/env python3
"""
Interactive local chat harness (no HTTP, no WhatsApp).

Usage:
  python3 scripts/chat_local.py

What it does:
- Keeps a stable phone number for the session
- Sends your typed messages through the same HandleIncomingMessageUseCase
- Prints the action taken (booked, rejected, ...) and the reply text

Defaults to the in-memory stores and the mock extractor; export
STORE_PROVIDER=sql or EXTRACTOR_PROVIDER=openai to exercise the real ones.
"""

from __future__ import annotations

import os
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from clinicbook.core.config import Settings  # noqa: E402
from clinicbook.wiring.dependencies import build_container  # noqa: E402


def _print_header(phone_number: str) -> None:
    print("\nLocal Chat Harness")
    print("-" * 60)
    print(f"phone: {phone_number}")
    print("Type your message and press Enter.")
    print("Commands: /new (new phone), /history, /appointments, /quit, /help")
    print("-" * 60)


def main() -> None:
    phone_number = os.getenv("CHAT_PHONE", "5511999990000")
    settings = Settings(
        STORE_PROVIDER=os.getenv("STORE_PROVIDER", "memory"),
        EXTRACTOR_PROVIDER=os.getenv("EXTRACTOR_PROVIDER", "mock"),
    )
    container = build_container(settings)
    container.start()
    _print_header(phone_number)

    try:
        while True:
            try:
                user_text = input("\n> ").strip()
            except (EOFError, KeyboardInterrupt):
                print("\nBye!")
                return

            if not user_text:
                continue

            cmd = user_text.lower()
            if cmd in ("/quit", "/exit"):
                print("Bye!")
                return
            if cmd == "/help":
                print("Commands:")
                print("  /new  -> start over with a new phone number")
                print("  /history -> show last 10 messages of the active conversation")
                print("  /appointments -> list every appointment")
                print("  /quit -> exit")
                continue
            if cmd == "/new":
                phone_number = f"55119{int(time.time()) % 100000000:08d}"
                print(f"New phone: {phone_number}")
                continue
            if cmd == "/history":
                conversation = container.sessions.get_or_create_active(phone_number)
                print("\n--- History (last 10) ---")
                for message in container.sessions.get_history(conversation.id, limit=10):
                    print(f"{message.role.value}: {message.content}")
                continue
            if cmd == "/appointments":
                for appointment in container.admin.list_appointments():
                    print(
                        f"{appointment.date.isoformat()} {appointment.time_label} "
                        f"{appointment.status.value:<9} {appointment.customer_phone} {appointment.service}"
                    )
                continue

            reply = container.handle_message.handle(phone_number, user_text)
            print(f"\n--- {reply.action} ---")
            print(reply.text or "(no outbound message)")
    finally:
        container.close()


if __name__ == "__main__":
    main()
