# aicounsel/main.py
"""
Console chat screen.

- Text in -> counseling session -> text out
- --voice : also synthesize and play each reply (voice chat screen)
- --email : use this account instead of the one in local settings

On first run (no completed profile in local settings) the registration
prompts are shown before the chat starts.
"""

from __future__ import annotations

import argparse
import sys
from datetime import date
from typing import Optional

from aicounsel.config import local_store
from aicounsel.config.settings import load_settings
from aicounsel.core.bootstrap import Services, build_services
from aicounsel.core.errors import ConfigurationError, PersistenceError, RegistrationError
from aicounsel.core.messages import ResponseChannel, Role
from aicounsel.core.registration import REGISTRATION_SUCCEEDED, register_user
from aicounsel.memory.models import Gender

EXIT_WORDS = {"exit", "quit", "終了"}

# How long exit waits for the last conversation save to reach the store
SAVE_JOIN_TIMEOUT_SECONDS = 10.0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="AI counseling chat (console).")
    p.add_argument("--voice", action="store_true", help="Speak replies through text-to-speech.")
    p.add_argument("--email", default=None, help="Account email (overrides local settings).")
    p.add_argument("--register", action="store_true", help="Run profile registration before chatting.")
    return p


def _prompt_birthdate() -> date:
    while True:
        raw = input("生年月日 (YYYY-MM-DD): ").strip()
        try:
            return date.fromisoformat(raw)
        except ValueError:
            print("日付の形式が正しくありません。")


def run_registration(services: Services, email: str) -> bool:
    print("プロフィール登録画面")
    while True:
        nickname = input("ニックネーム: ").strip()
        birthdate = _prompt_birthdate()
        options = " / ".join(f"{g.value}({g.label})" for g in Gender)
        gender = input(f"性別 [{options}]: ").strip() or None
        try:
            register_user(
                services.store,
                services.local,
                email=email,
                nickname=nickname,
                birthdate=birthdate,
                gender=gender,
                offset_hours=services.settings.timestamp_utc_offset_hours,
            )
        except RegistrationError as e:
            print(f"エラー: {e}")
            continue
        except PersistenceError as e:
            print(f"エラー: プロフィールを保存できませんでした ({e})")
            return False
        print(REGISTRATION_SUCCEEDED)
        return True


def _resolve_email(services: Services, override: Optional[str]) -> Optional[str]:
    if override:
        services.local.set(local_store.USER_EMAIL, override)
        return override
    email = services.local.user_email
    if email:
        return email
    try:
        entered = input("メールアドレス: ").strip()
    except (EOFError, KeyboardInterrupt):
        return None
    if entered:
        services.local.set(local_store.USER_EMAIL, entered)
    return entered or None


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        services = build_services(load_settings())
    except ConfigurationError as e:
        print(f"[config] {e}", file=sys.stderr)
        return 1

    email = _resolve_email(services, args.email)
    if not email:
        print("[config] A user email is required.", file=sys.stderr)
        return 1

    if args.register or not services.local.is_user_data_complete:
        try:
            if not run_registration(services, email):
                return 1
        except (EOFError, KeyboardInterrupt):
            print("\n[Session ended]")
            return 0

    channel = ResponseChannel.VOICE if args.voice else ResponseChannel.TEXT
    session = services.new_session(voice=args.voice)
    for turn in session.enter():
        speaker = "AI" if turn.role == Role.ASSISTANT else "You"
        print(f"{speaker}: {turn.text}")

    print("カウンセリングチャット。'exit' で終了します。\n")
    pending_save = None
    try:
        while True:
            try:
                user = input("You: ").strip()
            except (EOFError, KeyboardInterrupt):
                print("\n[Session ended]")
                break

            if not user:
                continue
            if user.lower() in EXIT_WORDS:
                break

            result = session.exchange(user, channel=channel)
            pending_save = result.save
            print(f"AI: {result.reply}\n")
            if result.speech is not None and session.synthesizer is not None:
                session.synthesizer.wait()
    finally:
        if pending_save is not None:
            pending_save.join(SAVE_JOIN_TIMEOUT_SECONDS)
            if pending_save.is_alive():
                print("[warn] The last conversation may not have been saved.", file=sys.stderr)
        session.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
