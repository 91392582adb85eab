"""
Login Throttling Service

WHY: Prevent brute-force password attacks by limiting failed login attempts.

SECURITY FEATURES:
- Tracks failed attempts per normalized login identifier
- LOGIN_MAX_FAILED_ATTEMPTS failures within LOGIN_WINDOW_SECONDS
  blocks further attempts until the window slides past them
- Every attempt, failed or successful, is kept in login_attempts for audit
"""

from datetime import timedelta

from flask import current_app

from ..errors import TooManyAttemptsError
from ..extensions import db
from ..models import LoginAttempt
from shoppos.time_utils import utcnow


def _window() -> timedelta:
    return timedelta(seconds=current_app.config["LOGIN_WINDOW_SECONDS"])


def get_recent_failed_attempts(identifier: str) -> int:
    """Count failed login attempts for an identifier within the window."""
    cutoff = utcnow() - _window()
    return db.session.query(LoginAttempt).filter(
        LoginAttempt.identifier == identifier,
        LoginAttempt.success.is_(False),
        LoginAttempt.occurred_at >= cutoff,
    ).count()


def check_not_locked(identifier: str) -> None:
    """Raise TooManyAttemptsError when the identifier is throttled."""
    max_attempts = current_app.config["LOGIN_MAX_FAILED_ATTEMPTS"]
    if get_recent_failed_attempts(identifier) >= max_attempts:
        raise TooManyAttemptsError(
            "Too many failed login attempts, try again later",
            {"retry_after_seconds": current_app.config["LOGIN_WINDOW_SECONDS"]},
        )


def record_attempt(
    identifier: str,
    *,
    success: bool,
    user_id: int | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    db.session.add(LoginAttempt(
        identifier=identifier,
        user_id=user_id,
        success=success,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
        occurred_at=utcnow(),
    ))
    db.session.commit()
