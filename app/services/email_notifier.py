# app/services/email_notifier.py
from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import List

from app.core.config import get_settings
from app.domain import recurrence
from app.domain.meeting import MeetingAction
from app.domain.plan import ChangeKind, Notification

logger = logging.getLogger(__name__)

_SCOPE_LABELS = {
    MeetingAction.ALL: "the meeting",
    MeetingAction.THIS: "one occurrence of the meeting",
    MeetingAction.FUTURE: "this and all following occurrences of the meeting",
}

_KIND_LABELS = {
    ChangeKind.CREATED: "scheduled",
    ChangeKind.UPDATED: "updated",
    ChangeKind.RESCHEDULED: "rescheduled",
    ChangeKind.CANCELLED: "cancelled",
}


def _recipients(notification: Notification) -> List[str]:
    return sorted({p.email.strip() for p in notification.people if p.email and p.email.strip()})


def _series_zone(settings):
    return recurrence.resolve_zone(settings.SERIES_TIMEZONE)


def build_meeting_change_subject(notification: Notification) -> str:
    settings = get_settings()
    when = notification.timeslot.describe(_series_zone(settings))
    return f"[{settings.APP_NAME}] Meeting {_KIND_LABELS[notification.kind]}: {when}"


def build_meeting_change_email_body(notification: Notification) -> str:
    """
    Build a plain-text body describing a meeting change.

    Clock times are printed in the series time zone.
    """
    settings = get_settings()
    zone = _series_zone(settings)
    lines: list[str] = []

    lines.append(
        f"{_SCOPE_LABELS[notification.scope].capitalize()} has been "
        f"{_KIND_LABELS[notification.kind]}."
    )
    lines.append("")
    if notification.previous is not None:
        lines.append(f"Previously: {notification.previous.describe(zone)}")
        lines.append(f"Now:        {notification.timeslot.describe(zone)}")
    else:
        lines.append(f"When: {notification.timeslot.describe(zone)}")

    names = [p.name or p.email or p.id for p in notification.people]
    if names:
        lines.append("")
        lines.append(f"Participants: {', '.join(names)}")

    lines.append("")
    lines.append(f"Meeting ID: {notification.meeting_id}")
    lines.append("")
    lines.append("Regards,")
    lines.append(settings.APP_NAME)

    return "\n".join(lines)


def send_meeting_change_email(notification: Notification, subject: str | None = None) -> bool:
    """
    E-mail the people of a Notification via SMTP.

    Returns
    -------
    bool
        True if an attempt to send was made and succeeded.
        False if there is nobody to mail, e-mail is not configured, or the
        transport fails.
    """
    settings = get_settings()

    recipients = _recipients(notification)
    if not recipients:
        logger.info("No recipients for meeting %s notification", notification.meeting_id)
        return False

    if not settings.SMTP_HOST or not settings.SMTP_FROM_ADDRESS:
        logger.info(
            "SMTP not configured; skipping %s notification for meeting %s",
            notification.kind.value,
            notification.meeting_id,
        )
        return False

    if subject is None:
        subject = build_meeting_change_subject(notification)

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.SMTP_FROM_ADDRESS
    msg["To"] = ", ".join(recipients)
    msg.set_content(build_meeting_change_email_body(notification))

    try:
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as smtp:
            if settings.SMTP_USE_TLS:
                smtp.starttls()
            if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
                smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            smtp.send_message(msg)
        return True
    except (smtplib.SMTPException, OSError):
        logger.warning(
            "Failed to send %s notification for meeting %s",
            notification.kind.value,
            notification.meeting_id,
            exc_info=True,
        )
        return False
