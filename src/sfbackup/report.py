"""
Per-object outcomes of a backup run and delivery of the run summary.

Without e-mail recipients every outcome is echoed to the output stream as it
happens and the totals are printed at the end. With recipients the lines are
buffered and sent as one message by :meth:`Report.finalize`.
"""

from __future__ import annotations

import logging
import smtplib
import sys
from dataclasses import dataclass
from email.message import EmailMessage
from enum import Enum
from typing import List, NoReturn, Optional, TextIO

from .config import EmailConfig, split_host_port
from .exceptions import FatalBackupError, NotificationError

_logger = logging.getLogger(__name__)

SENDER_NAME = "salesforce.com backup"
SUBJECT_DONE = "salesforce.com backup completed"
SUBJECT_FATAL = "Fatal failure in salesforce.com backup"


class Status(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Outcome:
    object_name: str
    status: Status
    count: int = 0
    message: str = ""

    def line(self) -> str:
        if self.status is Status.SUCCESS:
            return f"{self.object_name} - {self.count} records"
        if self.status is Status.SKIPPED:
            return f"{self.object_name} - skipped: {self.message}"
        return f"{self.object_name} - {self.message}"


class EmailSender:
    """Sends plain-text mail through the configured SMTP server."""

    def __init__(self, cfg: EmailConfig, timeout: float = 60.0) -> None:
        self.cfg = cfg
        self.host, self.port = split_host_port(cfg.server)
        self.timeout = timeout

    def send(self, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["From"] = f"{SENDER_NAME} <{self.cfg.sender}>" if self.cfg.sender else SENDER_NAME
        msg["To"] = ", ".join(self.cfg.to)
        msg["Subject"] = subject
        msg.set_content(body)

        if self.cfg.starttls:
            smtp: smtplib.SMTP = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        else:
            smtp = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        with smtp:
            if self.cfg.starttls:
                smtp.starttls()
            if self.cfg.user:
                smtp.login(self.cfg.user, self.cfg.password)
            smtp.send_message(msg, from_addr=self.cfg.sender or None, to_addrs=self.cfg.to)
        _logger.info("Sent '%s' to %s", subject, ", ".join(self.cfg.to))


class Report:
    """Collects outcomes in processing order and delivers the summary."""

    def __init__(
        self,
        email: Optional[EmailConfig] = None,
        stream: Optional[TextIO] = None,
        sender: Optional[EmailSender] = None,
    ) -> None:
        self.email = email or EmailConfig()
        self.stream = stream or sys.stdout
        self.outcomes: List[Outcome] = []
        self.sender: Optional[EmailSender] = sender
        if self.sender is None and self.email.enabled:
            self.sender = EmailSender(self.email)

    # --------------------------- recording ---------------------------

    def record(self, outcome: Outcome) -> None:
        self.outcomes.append(outcome)
        if self.sender is None:
            self._echo(outcome.line())

    def record_success(self, object_name: str, count: int) -> None:
        self.record(Outcome(object_name, Status.SUCCESS, count=count))

    def record_error(self, object_name: str, message: str) -> None:
        self.record(Outcome(object_name, Status.ERROR, message=message))

    def record_skipped(self, object_name: str, reason: str) -> None:
        self.record(Outcome(object_name, Status.SKIPPED, message=reason))

    # --------------------------- totals ------------------------------

    def _count(self, status: Status) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def successes(self) -> int:
        return self._count(Status.SUCCESS)

    @property
    def errors(self) -> int:
        return self._count(Status.ERROR)

    @property
    def skipped(self) -> int:
        return self._count(Status.SKIPPED)

    def summary(self) -> str:
        return (
            f"Backup finished with {self.successes} objects backed up, "
            f"{self.errors} objects failed and {self.skipped} objects skipped."
        )

    # --------------------------- delivery ----------------------------

    def finalize(self) -> None:
        """Deliver the summary; raises NotificationError if mail cannot be sent."""
        if self.sender is None:
            self._echo(
                f"Total: {self.successes} objects copied, {self.errors} objects failed, "
                f"{self.skipped} objects skipped"
            )
            return

        body = self.summary() + "\nDetailed report below:\n"
        body += "".join(o.line() + "\n" for o in self.outcomes)
        try:
            self.sender.send(SUBJECT_DONE, body)
        except (OSError, smtplib.SMTPException) as e:
            raise NotificationError(f"failed to send email: {e}") from e

    def fatal(self, message: str) -> NoReturn:
        """Report a failure that prevents the run from starting, then raise."""
        _logger.error("Backup failed to start: %s", message)
        if self.sender is not None:
            try:
                self.sender.send(SUBJECT_FATAL, f"Backup failed to start: {message}\n")
            except (OSError, smtplib.SMTPException) as e:
                _logger.error("failed to send email: %s", e)
        raise FatalBackupError(message)

    def _echo(self, line: str) -> None:
        print(line, file=self.stream)
