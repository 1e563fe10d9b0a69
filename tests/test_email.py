"""Tests for the email sources."""

import asyncio
import datetime

import httpx

from metrics_hub.ingestion.brevo import BrevoSource
from metrics_hub.ingestion.email_imap import (
    EmailSource,
    MailSummary,
    average_response_minutes,
    categorize,
    summarize_headers,
)
from metrics_hub.ingestion.outcome import Empty


def headers(subject, date, message_id="", to="team@example.com", in_reply_to="") -> bytes:
    lines = [f"Subject: {subject}", "From: someone@example.org", f"To: {to}", f"Date: {date}"]
    if message_id:
        lines.append(f"Message-ID: {message_id}")
    if in_reply_to:
        lines.append(f"In-Reply-To: {in_reply_to}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode()


class FakeIMAP:
    """Minimal IMAP4 stand-in serving header blocks per folder."""

    def __init__(self, folders):
        self.folders = folders
        self.current = None

    def login(self, user, password):
        return "OK", [b"logged in"]

    def select(self, mailbox, readonly=False):
        name = mailbox.strip('"')
        if name not in self.folders:
            return "NO", [b"no such folder"]
        self.current = name
        return "OK", [str(len(self.folders[name])).encode()]

    def search(self, charset, *criteria):
        count = len(self.folders[self.current])
        return "OK", [" ".join(str(i + 1) for i in range(count)).encode()]

    def fetch(self, num, spec):
        raw = self.folders[self.current][int(num) - 1]
        return "OK", [(num + b" (BODY[HEADER] {%d}" % len(raw), raw), b")"]

    def logout(self):
        return "BYE", [b"logging out"]


def mail(subject="", to="", minutes=0, message_id="", in_reply_to="", references=()):
    return MailSummary(
        subject=subject,
        sender="someone@example.org",
        to=to,
        sent_at=datetime.datetime(2024, 1, 15, 9, 0, tzinfo=datetime.timezone.utc) + datetime.timedelta(minutes=minutes),
        message_id=message_id,
        in_reply_to=in_reply_to,
        references=list(references),
    )


class TestCategorize:
    def test_support_by_subject_or_address(self):
        assert categorize(mail(subject="App not working")) == "support"
        assert categorize(mail(subject="Question", to="support@example.com")) == "support"

    def test_sales(self):
        assert categorize(mail(subject="Enterprise pricing")) == "sales"
        assert categorize(mail(to="Sales@Example.com")) == "sales"

    def test_other(self):
        assert categorize(mail(subject="Newsletter")) == "other"


class TestResponseTime:
    def test_matches_by_in_reply_to_and_references(self):
        received = [mail(message_id="<a@x>"), mail(message_id="<b@x>", minutes=60)]
        sent = [mail(in_reply_to="<a@x>", minutes=30), mail(references=["<z@x>", "<b@x>"], minutes=150)]
        assert average_response_minutes(received, sent) == 60

    def test_unanswered_mail_is_ignored(self):
        assert average_response_minutes([mail(message_id="<a@x>")], []) is None

    def test_replies_older_than_a_week_are_ignored(self):
        received = [mail(message_id="<a@x>")]
        sent = [mail(in_reply_to="<a@x>", minutes=8 * 24 * 60)]
        assert average_response_minutes(received, sent) is None

    def test_summarize_headers(self):
        summary = summarize_headers(headers("Help", "Mon, 15 Jan 2024 09:00:00 +0100", "<a@x>"))
        assert summary.subject == "Help"
        assert summary.message_id == "<a@x>"
        assert summary.sent_at.astimezone(datetime.timezone.utc).hour == 8


class TestEmailSource:
    """Tests for the IMAP mailbox source."""

    def test_counts_by_type(self, settings, context):
        folders = {
            "INBOX": [
                headers("Help: app crashes", "Mon, 15 Jan 2024 09:00:00 +0000", "<a@x>", to="support@example.com"),
                headers("Pricing for teams", "Mon, 15 Jan 2024 10:00:00 +0000", "<b@x>"),
                headers("Hello", "Sun, 14 Jan 2024 23:00:00 +0000", "<c@x>"),
            ],
            "Sent": [
                headers("Re: Help: app crashes", "Mon, 15 Jan 2024 09:30:00 +0000", "<r@x>", in_reply_to="<a@x>"),
            ],
        }
        settings = settings.model_copy(
            update={"email_imap_host": "imap.example.com", "email_imap_user": "me", "email_imap_password": "pw"}
        )
        source = EmailSource(settings, imap_factory=lambda host, port: FakeIMAP(folders))
        assert source.is_configured()

        outcome = asyncio.run(source.fetch(context))

        by_type = {r.email_type: r for r in outcome.records}
        assert set(by_type) == {"support", "sales", "other"}
        assert (by_type["support"].received, by_type["support"].sent) == (1, 1)
        assert by_type["support"].tickets_opened == 1
        assert by_type["support"].avg_response_time_minutes == 30
        assert by_type["sales"].received == 1
        assert by_type["other"].received == 0
        assert all(r.app_id == "" for r in outcome.records)
        assert not outcome.partial

    def test_missing_sent_folder_is_a_warning(self, settings, context):
        folders = {"INBOX": [headers("Hi", "Mon, 15 Jan 2024 09:00:00 +0000", "<a@x>")]}
        source = EmailSource(settings, imap_factory=lambda host, port: FakeIMAP(folders))
        outcome = asyncio.run(source.fetch(context))
        assert outcome.warnings == ("Could not read any sent folder",)


class TestBrevo:
    REPORT = {"reports": [{"date": "2024-01-15", "requests": 120, "delivered": 118, "uniqueOpens": 60,
                           "uniqueClicks": 12, "unsubscribed": 1}]}

    def test_report_maps_to_transactional_row(self, settings, context, mock_client):
        def handler(request):
            assert request.headers["api-key"] == "brevo-key"
            assert request.url.params["startDate"] == "2024-01-15"
            return httpx.Response(200, json=self.REPORT)

        source = BrevoSource(settings, mock_client(handler), request_delay=0)
        (record,) = asyncio.run(source.fetch(context)).records

        assert record.app_id == "app-1"
        assert record.email_type == "transactional"
        assert (record.sent, record.received, record.opens, record.clicks, record.unsubscribes) == (120, 118, 60, 12, 1)

    def test_no_activity_is_empty(self, settings, context, mock_client):
        source = BrevoSource(settings, mock_client(lambda r: httpx.Response(200, json={"reports": []})), request_delay=0)
        assert isinstance(asyncio.run(source.fetch(context)), Empty)

    def test_unknown_app_is_a_warning(self, settings, context, mock_client):
        settings = settings.model_copy(update={"brevo_api_keys": {"ghost": "k"}})
        source = BrevoSource(settings, mock_client(lambda r: httpx.Response(500)), request_delay=0)
        outcome = asyncio.run(source.fetch(context))
        assert outcome.records == ()
        assert outcome.warnings == ("ghost: app not registered",)
