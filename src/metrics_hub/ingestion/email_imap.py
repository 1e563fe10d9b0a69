"""Support mailbox volume over IMAP."""

import asyncio
import datetime
import imaplib
from dataclasses import dataclass, field
from email import message_from_bytes, policy
from email.utils import parsedate_to_datetime

import structlog

from metrics_hub.ingestion.base import SourceAdapter
from metrics_hub.ingestion.context import IngestionContext
from metrics_hub.ingestion.outcome import FetchOutcome, ok
from metrics_hub.records import EmailMetricsRecord

logger = structlog.get_logger()

SUPPORT_KEYWORDS = ("help", "issue", "problem", "bug", "error", "not working")
SALES_KEYWORDS = ("pricing", "enterprise", "quote", "demo")

# Replies slower than a week are not counted as responses
MAX_RESPONSE_MINUTES = 7 * 24 * 60


@dataclass
class MailSummary:
    subject: str
    sender: str
    to: str
    sent_at: datetime.datetime | None
    message_id: str = ""
    in_reply_to: str = ""
    references: list[str] = field(default_factory=list)


def categorize(mail: MailSummary) -> str:
    subject = mail.subject.lower()
    to = mail.to.lower()
    if any(word in subject for word in SUPPORT_KEYWORDS) or "support@" in to:
        return "support"
    if any(word in subject for word in SALES_KEYWORDS) or "sales@" in to:
        return "sales"
    return "other"


def average_response_minutes(received: list[MailSummary], sent: list[MailSummary]) -> int | None:
    """Mean minutes between an inbound mail and the first reply that references it."""
    times = []
    for inbound in received:
        if not inbound.message_id or inbound.sent_at is None:
            continue
        reply = next(
            (
                out
                for out in sent
                if out.in_reply_to == inbound.message_id or inbound.message_id in out.references
            ),
            None,
        )
        if reply is None or reply.sent_at is None:
            continue
        minutes = (reply.sent_at - inbound.sent_at).total_seconds() / 60
        if 0 < minutes < MAX_RESPONSE_MINUTES:
            times.append(minutes)

    if not times:
        return None
    return round(sum(times) / len(times))


def summarize_headers(raw: bytes) -> MailSummary:
    message = message_from_bytes(raw, policy=policy.default)
    sent_at = None
    if message["Date"]:
        try:
            sent_at = parsedate_to_datetime(str(message["Date"]))
            if sent_at.tzinfo is None:
                sent_at = sent_at.replace(tzinfo=datetime.timezone.utc)
        except (TypeError, ValueError):
            sent_at = None
    return MailSummary(
        subject=str(message["Subject"] or ""),
        sender=str(message["From"] or ""),
        to=str(message["To"] or ""),
        sent_at=sent_at,
        message_id=str(message["Message-ID"] or "").strip(),
        in_reply_to=str(message["In-Reply-To"] or "").strip(),
        references=str(message["References"] or "").split(),
    )


class EmailSource(SourceAdapter):
    """Company-wide support, sales and other mail counts for the day."""

    name = "email"
    display_name = "Email IMAP"

    def __init__(self, settings, client=None, imap_factory=imaplib.IMAP4_SSL, **kwargs):
        super().__init__(settings, client, **kwargs)
        self.imap_factory = imap_factory

    def is_configured(self) -> bool:
        s = self.settings
        return bool(s.email_imap_host and s.email_imap_user and s.email_imap_password)

    def read_folder(self, folder: str, date: datetime.date) -> list[MailSummary]:
        """Blocking: return header summaries for mail dated ``date`` (UTC) in ``folder``."""
        imap = self.imap_factory(self.settings.email_imap_host, self.settings.email_imap_port)
        try:
            imap.login(self.settings.email_imap_user, self.settings.email_imap_password)
            status, _ = imap.select(f'"{folder}"', readonly=True)
            if status != "OK":
                raise imaplib.IMAP4.error(f"Cannot open folder {folder}")

            since = date.strftime("%d-%b-%Y")
            before = (date + datetime.timedelta(days=1)).strftime("%d-%b-%Y")
            status, data = imap.search(None, "SINCE", since, "BEFORE", before)
            if status != "OK":
                raise imaplib.IMAP4.error(f"Search failed in {folder}")

            mails = []
            for num in data[0].split():
                status, parts = imap.fetch(num, "(BODY.PEEK[HEADER])")
                if status != "OK":
                    continue
                for part in parts:
                    if isinstance(part, tuple):
                        mail = summarize_headers(part[1])
                        if mail.sent_at is None or mail.sent_at.astimezone(datetime.timezone.utc).date() == date:
                            mails.append(mail)
            return mails
        finally:
            try:
                imap.logout()
            except (imaplib.IMAP4.error, OSError):
                pass

    async def fetch(self, context: IngestionContext) -> FetchOutcome:
        received = await asyncio.to_thread(self.read_folder, "INBOX", context.date)

        warnings = []
        sent: list[MailSummary] = []
        for folder in self.settings.email_sent_folders:
            try:
                sent = await asyncio.to_thread(self.read_folder, folder, context.date)
                break
            except imaplib.IMAP4.error as e:
                logger.debug("Sent folder unavailable", folder=folder, error=str(e))
        else:
            warnings.append("Could not read any sent folder")

        by_type: dict[str, tuple[list, list]] = {t: ([], []) for t in ("support", "sales", "other")}
        for mail in received:
            by_type[categorize(mail)][0].append(mail)
        for mail in sent:
            by_type[categorize(mail)][1].append(mail)

        records = []
        for email_type, (inbound, outbound) in by_type.items():
            extra = {}
            if email_type == "support":
                extra = {
                    "tickets_opened": len(inbound),
                    "avg_response_time_minutes": average_response_minutes(inbound, sent),
                }
            records.append(
                EmailMetricsRecord(
                    app_id="",
                    date=context.date,
                    email_type=email_type,
                    received=len(inbound),
                    sent=len(outbound),
                    raw_data={"total_received": len(received), "total_sent": len(sent)},
                    **extra,
                )
            )

        return ok(records, warnings)
