"""Terminal front-end for the chat proxy.

Plain lines are sent as chat messages; slash commands manage sessions.
History lives in a per-profile directory of JSON files, so quitting and
starting again picks up the same conversation and saved sessions.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional, TextIO

from chatbot.core.errors import ChatError, SessionNotFoundError
from chatbot.core.memory import SessionStore, TabId
from chatbot.core.models import CURRENT_TAB
from chatbot.core.persistence import JsonFileStorage
from chatbot.tools.chat_api import ConversationService, SummarizationService
from config.settings import get_settings


logger = logging.getLogger("gemini_chat.cli")

HELP_TEXT = """Commands:
  /new            save this conversation and start a new one
  /sessions       show or hide the saved session list
  /open <#n|id>   view a saved session
  /current        back to the current conversation
  /delete <#n|id> delete a saved session
  /help           show this help
  /quit           exit"""


class TerminalView:
    """Re-renders the displayed conversation whenever the store changes."""

    def __init__(self, store: SessionStore, out: TextIO = sys.stdout) -> None:
        self.store = store
        self.out = out
        self._shown_tab: Optional[TabId] = None
        self._shown_count = 0
        self._sidebar_shown: Optional[tuple] = None
        self.typing = False
        store.subscribe(self.refresh)

    def write(self, text: str = "") -> None:
        print(text, file=self.out)

    def refresh(self, store: SessionStore) -> None:
        messages = store.displayed_messages
        tab = store.active_tab
        if tab != self._shown_tab or len(messages) < self._shown_count:
            self._write_header(store)
            start = 0
        else:
            start = self._shown_count
        for message in messages[start:]:
            speaker = "You" if message.sender == "user" else "Bot"
            self.write(f"{speaker}: {message.text}")
        if self.typing and start < len(messages) and messages[-1].sender == "user":
            self.write("Bot is typing...")
            self.typing = False
        self._shown_tab, self._shown_count = tab, len(messages)

        # redraw the open list whenever its contents or highlight change
        shown = None
        if store.sidebar_open:
            shown = (tab, tuple((s.id, s.title) for s in store.saved_sessions))
            if shown != self._sidebar_shown:
                self.write_sidebar()
        self._sidebar_shown = shown

    def _write_header(self, store: SessionStore) -> None:
        if store.is_current:
            self.write("=== Current Conversation ===")
        else:
            session = store.get_session(store.active_tab)
            self.write(f"=== {session.title} ({session.timestamp}) [read-only] ===")

    def write_sidebar(self) -> None:
        self.write("--- Sessions ---")
        marker = "*" if self.store.is_current else " "
        self.write(f" {marker}      Current Conversation")
        for index, session in enumerate(self.store.saved_sessions, start=1):
            marker = "*" if self.store.active_tab == session.id else " "
            self.write(f" {marker} #{index:<3} {session.title}  ({session.timestamp}, id {session.id})")
        self.write("----------------")


class ChatShell:
    def __init__(self, store: SessionStore, view: TerminalView) -> None:
        self.store = store
        self.view = view

    def resolve(self, ref: str) -> TabId:
        """Turn ``#n`` (list position) or a raw id into a session id."""
        ref = ref.strip()
        if ref == CURRENT_TAB:
            return CURRENT_TAB
        sessions = self.store.saved_sessions
        if ref.startswith("#"):
            try:
                return sessions[int(ref[1:]) - 1].id
            except (ValueError, IndexError):
                raise SessionNotFoundError(ref)
        try:
            return int(ref)
        except ValueError:
            raise SessionNotFoundError(ref)

    def handle(self, line: str) -> bool:
        """Process one input line. Returns False when the shell should exit."""
        text = line.strip()
        if not text:
            return True
        if not text.startswith("/"):
            self._send(line)
            return True

        command, _, arg = text.partition(" ")
        try:
            if command in ("/quit", "/exit"):
                return False
            if command == "/help":
                self.view.write(HELP_TEXT)
            elif command == "/new":
                session = self.store.start_new_session()
                if session is not None:
                    self.view.write(f"Saved session: {session.title}")
            elif command == "/sessions":
                self.store.toggle_sidebar()
            elif command == "/open":
                self.store.switch_tab(self.resolve(arg))
            elif command == "/current":
                self.store.switch_tab(CURRENT_TAB)
            elif command == "/delete":
                if not self.store.delete_session(self.resolve(arg)):
                    self.view.write(f"No saved session {arg.strip()!r}")
            else:
                self.view.write(f"Unknown command {command}. Type /help for commands.")
        except ChatError as exc:
            self.view.write(str(exc))
        return True

    def _send(self, text: str) -> None:
        if not self.store.is_current:
            self.view.write("Viewing a saved session. Use /current to continue chatting.")
            return
        self.view.typing = True
        try:
            self.store.send_message(text)
        finally:
            self.view.typing = False

    def loop(self) -> None:
        self.view.refresh(self.store)
        while True:
            try:
                line = input("> ")
            except (EOFError, KeyboardInterrupt):
                self.view.write()
                break
            if not self.handle(line):
                break


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Chat with Gemini from the terminal.")
    parser.add_argument("--api-url", default=settings.chat_api_url, help="Base URL of the chat proxy")
    parser.add_argument("--store-dir", default=settings.chat_store_dir, help="Directory for saved history")
    parser.add_argument("--timeout", type=float, default=settings.chat_timeout, help="Request timeout in seconds")
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level (default: %(default)s)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="[%(asctime)s] %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    logger.info("Using chat API %s, history in %s", args.api_url, args.store_dir)

    store = SessionStore(
        JsonFileStorage(args.store_dir),
        conversation=ConversationService(args.api_url, timeout=args.timeout),
        summarizer=SummarizationService(args.api_url, timeout=args.timeout),
    )
    view = TerminalView(store)
    view.write("Type /help for commands.")
    ChatShell(store, view).loop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
