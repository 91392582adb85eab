# Overview: Post-commit notification outbox and the Telegram delivery channel.

"""
Notifications

WHY: Stock changes and sales announce themselves in a Telegram chat. That
message is not part of the business transaction: it must never delay the
commit, never roll it back and never be sent for a transaction that rolled
back.

HOW:
- Services call notify_after_commit(text) while the transaction is open.
  The text is queued on the SQLAlchemy session (session.info).
- An after_commit hook hands the queue to the app's notifier.
- after_soft_rollback drops the queue.
- TelegramNotifier posts with httpx, on a worker thread when NOTIFY_ASYNC.
  Delivery failures are logged and swallowed.
"""

from __future__ import annotations

import atexit
import logging
from concurrent.futures import ThreadPoolExecutor

import httpx
from flask import current_app
from sqlalchemy import event
from sqlalchemy.orm import Session

from ..extensions import db

log = logging.getLogger(__name__)

PENDING_KEY = "pending_notifications"


class TelegramNotifier:
    """Sends plain-text messages through the Telegram Bot API."""

    def __init__(
        self,
        *,
        token: str | None,
        chat_id: str | None,
        api_base: str = "https://api.telegram.org",
        proxy: str | None = None,
        timeout: float = 5,
        async_mode: bool = True,
    ):
        self.token = token
        self.chat_id = chat_id
        self.api_base = api_base.rstrip("/")
        self.proxy = proxy
        self.timeout = timeout
        self.async_mode = async_mode
        self._executor = None

    @classmethod
    def from_config(cls, config) -> "TelegramNotifier":
        return cls(
            token=config.get("TELEGRAM_BOT_TOKEN"),
            chat_id=config.get("TELEGRAM_CHAT_ID"),
            api_base=config.get("TELEGRAM_API_BASE", "https://api.telegram.org"),
            proxy=config.get("HTTPS_PROXY"),
            timeout=config.get("NOTIFY_TIMEOUT_SECONDS", 5),
            async_mode=config.get("NOTIFY_ASYNC", True),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.token and self.chat_id)

    def send(self, text: str) -> None:
        if not self.enabled:
            log.debug("Telegram disabled, dropping notification")
            return
        if self.async_mode:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="notify")
            self._executor.submit(self._deliver, text)
        else:
            self._deliver(text)

    def _deliver(self, text: str) -> None:
        url = f"{self.api_base}/bot{self.token}/sendMessage"
        try:
            with httpx.Client(timeout=self.timeout, proxy=self.proxy) as client:
                response = client.post(url, json={
                    "chat_id": self.chat_id,
                    "text": text,
                    "disable_web_page_preview": True,
                })
                response.raise_for_status()
        except httpx.HTTPError as exc:
            log.warning("Telegram delivery failed: %s", exc)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None


def init_notifier(app) -> None:
    notifier = TelegramNotifier.from_config(app.config)
    app.extensions["notifier"] = notifier
    atexit.register(notifier.shutdown)
    _register_session_hooks()


def get_notifier():
    return current_app.extensions["notifier"]


def notify_after_commit(text: str, session=None) -> None:
    """Queue text for delivery once the current transaction commits."""
    session = session if session is not None else db.session
    session.info.setdefault(PENDING_KEY, []).append((get_notifier(), text))


def notify_now(text: str) -> None:
    """Send outside any transaction (scheduler, CLI)."""
    get_notifier().send(text)


def _dispatch_pending(session) -> None:
    pending = session.info.pop(PENDING_KEY, None)
    if not pending:
        return
    for notifier, text in pending:
        try:
            notifier.send(text)
        except Exception:
            log.exception("Notifier raised while dispatching a post-commit message")


def _discard_pending(session, previous_transaction) -> None:
    session.info.pop(PENDING_KEY, None)


def _register_session_hooks() -> None:
    if not event.contains(Session, "after_commit", _dispatch_pending):
        event.listen(Session, "after_commit", _dispatch_pending)
    if not event.contains(Session, "after_soft_rollback", _discard_pending):
        event.listen(Session, "after_soft_rollback", _discard_pending)
