from __future__ import annotations

import logging
import smtplib
from datetime import date
from email.message import EmailMessage
from pathlib import Path
from typing import Optional, Protocol

from jinja2 import Environment, FileSystemLoader, select_autoescape

import email_templates
from alerts import percent_of, round_percent
from config import Settings, get_settings


logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(email_templates.__file__).resolve().parent


class Notifier(Protocol):
    def send_budget_alert(
        self,
        owner_email: str,
        category_name: str,
        budget_amount_cents: int,
        spent_amount_cents: int,
        threshold: int,
        is_exceeded: bool,
        user_name: Optional[str] = None,
    ) -> bool: ...

    def send_bill_reminder(
        self,
        owner_email: str,
        bill_name: str,
        amount_cents: int,
        due_date: date,
        days_to_due: int,
        user_name: Optional[str] = None,
    ) -> bool: ...


def format_money(cents: int) -> str:
    return f"${cents / 100:,.2f}"


def reminder_urgency(days_to_due: int) -> str:
    if days_to_due <= 1:
        return "high"
    if days_to_due <= 3:
        return "medium"
    return "low"


def due_phrase(days_to_due: int) -> str:
    if days_to_due == 0:
        return "today"
    if days_to_due == 1:
        return "tomorrow"
    return f"in {days_to_due} days"


def _build_environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(["html"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["money"] = format_money
    return env


def budget_alert_subject(category_name: str, is_exceeded: bool) -> str:
    alert_type = "exceeded" if is_exceeded else "threshold reached"
    return f"Budget Alert: {category_name} budget {alert_type}"


def bill_reminder_subject(bill_name: str, days_to_due: int) -> str:
    prefix = {"high": "URGENT: ", "medium": "Reminder: "}.get(
        reminder_urgency(days_to_due), ""
    )
    plural = "" if days_to_due == 1 else "s"
    return (
        f"{prefix}Bill Payment Reminder: {bill_name} due in {days_to_due} day{plural}"
    )


class SmtpNotifier:
    """Sends alert and reminder emails over SMTP.

    Delivery problems are logged and reported as ``False``; nothing is retried.
    With no SMTP host configured every send is skipped.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self.env = _build_environment()

    def _render(self, name: str, **context) -> tuple[str, str]:
        context.setdefault("app_url", self.settings.app_url)
        text = self.env.get_template(f"{name}.txt").render(**context)
        html = self.env.get_template(f"{name}.html").render(**context)
        return text, html

    def _send(self, to: str, subject: str, text: str, html: str) -> bool:
        if not self.settings.email_enabled:
            logger.warning("email_skipped: no SMTP host configured, to=%s", to)
            return False

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.settings.email_from
        msg["To"] = to
        msg.set_content(text)
        msg.add_alternative(html, subtype="html")

        try:
            with smtplib.SMTP(
                self.settings.smtp_host,
                self.settings.smtp_port,
                timeout=self.settings.smtp_timeout_secs,
            ) as server:
                if self.settings.smtp_use_tls:
                    server.starttls()
                if self.settings.smtp_username and self.settings.smtp_password:
                    server.login(self.settings.smtp_username, self.settings.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError):
            logger.exception("email_failed: to=%s subject=%r", to, subject)
            return False

        logger.info("email_sent: to=%s subject=%r", to, subject)
        return True

    def send_budget_alert(
        self,
        owner_email: str,
        category_name: str,
        budget_amount_cents: int,
        spent_amount_cents: int,
        threshold: int,
        is_exceeded: bool,
        user_name: Optional[str] = None,
    ) -> bool:
        percent = (
            round_percent(percent_of(spent_amount_cents, budget_amount_cents))
            if budget_amount_cents
            else 0
        )
        text, html = self._render(
            "budget_alert",
            user_name=user_name or "there",
            category_name=category_name,
            budget_amount_cents=budget_amount_cents,
            spent_amount_cents=spent_amount_cents,
            percent_spent=percent,
            threshold=threshold,
            is_exceeded=is_exceeded,
        )
        subject = budget_alert_subject(category_name, is_exceeded)
        return self._send(owner_email, subject, text, html)

    def send_bill_reminder(
        self,
        owner_email: str,
        bill_name: str,
        amount_cents: int,
        due_date: date,
        days_to_due: int,
        user_name: Optional[str] = None,
    ) -> bool:
        text, html = self._render(
            "bill_reminder",
            user_name=user_name,
            bill_name=bill_name,
            amount_cents=amount_cents,
            due_date=due_date.strftime("%B %d, %Y"),
            due_phrase=due_phrase(days_to_due),
            urgency=reminder_urgency(days_to_due),
        )
        subject = bill_reminder_subject(bill_name, days_to_due)
        return self._send(owner_email, subject, text, html)
