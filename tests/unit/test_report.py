"""Tests for sfbackup.report."""

import io
import smtplib
from unittest.mock import MagicMock, patch

import pytest

from sfbackup.config import EmailConfig
from sfbackup.exceptions import ConfigError, FatalBackupError, NotificationError
from sfbackup.report import (
    SUBJECT_DONE,
    SUBJECT_FATAL,
    EmailSender,
    Outcome,
    Report,
    Status,
)


@pytest.fixture
def email_cfg():
    return EmailConfig(
        server="smtp.example.com:465",
        user="backup@example.com",
        password="pw",
        sender="backup@example.com",
        to=["admin@example.com", "ops@example.com"],
    )


class TestOutcome:
    def test_lines(self):
        assert Outcome("Account", Status.SUCCESS, count=3).line() == "Account - 3 records"
        assert Outcome("Vote", Status.ERROR, message="boom").line() == "Vote - boom"
        assert Outcome("Note", Status.SKIPPED, message="why").line() == "Note - skipped: why"


class TestStdoutReport:
    def test_echoes_each_outcome_and_totals(self):
        out = io.StringIO()
        report = Report(stream=out)

        report.record_success("Account", 10)
        report.record_error("Vote", "INVALID_TYPE")
        report.record_skipped("Note", "no timestamp")
        report.finalize()

        assert out.getvalue().splitlines() == [
            "Account - 10 records",
            "Vote - INVALID_TYPE",
            "Note - skipped: no timestamp",
            "Total: 1 objects copied, 1 objects failed, 1 objects skipped",
        ]
        assert [o.object_name for o in report.outcomes] == ["Account", "Vote", "Note"]

    def test_fatal_raises(self):
        report = Report(stream=io.StringIO())

        with pytest.raises(FatalBackupError, match="login failed"):
            report.fatal("login failed")

    def test_counts(self):
        report = Report(stream=io.StringIO())
        report.record_success("A", 1)
        report.record_success("B", 0)
        report.record_error("C", "x")

        assert (report.successes, report.errors, report.skipped) == (2, 1, 0)
        assert "2 objects backed up" in report.summary()


class TestEmailReport:
    def test_buffers_and_sends_summary(self, email_cfg):
        out = io.StringIO()
        sender = MagicMock()
        report = Report(email_cfg, stream=out, sender=sender)

        report.record_success("Account", 10)
        report.record_error("Vote", "boom")
        report.finalize()

        assert out.getvalue() == ""
        subject, body = sender.send.call_args.args
        assert subject == SUBJECT_DONE
        assert "1 objects backed up, 1 objects failed" in body
        assert body.endswith("Account - 10 records\nVote - boom\n")

    def test_delivery_failure_raises_notification_error(self, email_cfg):
        sender = MagicMock()
        sender.send.side_effect = smtplib.SMTPException("relay denied")
        report = Report(email_cfg, sender=sender)

        with pytest.raises(NotificationError, match="relay denied"):
            report.finalize()

    def test_fatal_mails_then_raises_even_if_mail_fails(self, email_cfg):
        sender = MagicMock()
        sender.send.side_effect = OSError("connection refused")
        report = Report(email_cfg, sender=sender)

        with pytest.raises(FatalBackupError):
            report.fatal("failed to describe sobjects")

        assert sender.send.call_args.args[0] == SUBJECT_FATAL

    def test_bad_server_is_config_error(self, email_cfg):
        email_cfg.server = "smtp.example.com"

        with pytest.raises(ConfigError, match="failed to parse email server"):
            Report(email_cfg)


class TestEmailSender:
    def test_ssl_send(self, email_cfg):
        with patch("sfbackup.report.smtplib.SMTP_SSL") as smtp_ssl:
            conn = smtp_ssl.return_value
            EmailSender(email_cfg).send("subj", "body")

        smtp_ssl.assert_called_once_with("smtp.example.com", 465, timeout=60.0)
        conn.login.assert_called_once_with("backup@example.com", "pw")
        msg = conn.send_message.call_args.args[0]
        assert msg["Subject"] == "subj"
        assert msg["To"] == "admin@example.com, ops@example.com"
        conn.starttls.assert_not_called()

    def test_starttls_send(self, email_cfg):
        email_cfg.starttls = True
        email_cfg.server = "smtp.example.com:587"
        with patch("sfbackup.report.smtplib.SMTP") as smtp:
            conn = smtp.return_value
            EmailSender(email_cfg).send("subj", "body")

        smtp.assert_called_once_with("smtp.example.com", 587, timeout=60.0)
        conn.starttls.assert_called_once()
