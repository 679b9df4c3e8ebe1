"""Contact form submission rules shared by the endpoint and the form controller.

Anything that looks automated (honeypot filled, form submitted too fast) is
reported to the sender exactly like a delivered message. Only the internal
``Outcome`` tells the cases apart.
"""
import logging
import re
import time
from dataclasses import dataclass
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, make_msgid
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, field_validator

from app.core.mailer import MailConfig, MailTransport, MailTransportError

log = logging.getLogger("uvicorn.error")

MIN_FILL_MS = 5000
# form_time values below this are epoch seconds, not milliseconds
SECONDS_CUTOFF = 100_000_000_000

PLACEHOLDERS = {"name", "e-mail", "email", "phone", "message"}
TEXT_FIELDS = ("name", "email", "phone", "message")

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_WHITESPACE_RUN = re.compile(r"\s+")


def now_ms() -> int:
    return int(time.time() * 1000)


def is_placeholder(value: Optional[str]) -> bool:
    if not value:
        return True
    v = str(value).strip().lower()
    return v == "" or v in PLACEHOLDERS


def normalize_field(value: Optional[str]) -> str:
    return "" if is_placeholder(value) else str(value).strip()


def parse_form_time(raw: Any) -> int:
    """Leading integer of ``raw`` ("1700000000123", 1.7e12, " 42abc"), or 0."""
    if raw is None or isinstance(raw, bool):
        return 0
    if isinstance(raw, (int, float)):
        try:
            return int(raw)
        except (OverflowError, ValueError):
            return 0
    m = _LEADING_INT.match(str(raw))
    return int(m.group(1)) if m else 0


def normalize_form_time(raw: Any, now: int) -> int:
    loaded_at = parse_form_time(raw)
    if loaded_at <= 0:
        return now
    if loaded_at < SECONDS_CUTOFF:
        return loaded_at * 1000
    return loaded_at


def elapsed_ms(raw: Any, now: int) -> int:
    return now - normalize_form_time(raw, now)


class SubmissionPayload(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    message: str = ""
    website: str = ""
    form_time: Optional[Union[int, str]] = None

    @field_validator("name", "email", "phone", "message", mode="before")
    @classmethod
    def _clean_text(cls, v):
        if v is None or isinstance(v, (dict, list)):
            return ""
        return normalize_field(str(v))

    # these end up in mail headers (Subject, Reply-To) and must stay on one line
    @field_validator("name", "email", "phone")
    @classmethod
    def _single_line(cls, v: str) -> str:
        return _WHITESPACE_RUN.sub(" ", v).strip()

    @field_validator("website", mode="before")
    @classmethod
    def _clean_honeypot(cls, v):
        if v is None or (not isinstance(v, str) and not v):
            return ""
        return str(v).strip()

    @field_validator("form_time", mode="before")
    @classmethod
    def _raw_form_time(cls, v):
        if isinstance(v, (int, str)) and not isinstance(v, bool):
            return v
        if isinstance(v, float):
            return parse_form_time(v)
        return None

    @classmethod
    def from_body(cls, body: Any) -> "SubmissionPayload":
        if not isinstance(body, dict):
            body = {}
        return cls.model_validate({k: body.get(k) for k in cls.model_fields})


class DropReason(str, Enum):
    HONEYPOT = "honeypot"
    TOO_FAST = "too_fast"


@dataclass
class Delivered:
    message_id: Optional[str]
    response: str
    accepted: List[str]


@dataclass
class SilentlyDropped:
    reason: DropReason
    elapsed_ms: Optional[int] = None


@dataclass
class Rejected:
    error: str


@dataclass
class DispatchFailed:
    error: str
    details: str


Outcome = Union[Delivered, SilentlyDropped, Rejected, DispatchFailed]

MISSING_FIELDS = "Missing required fields"
VERIFY_FAILED = "SMTP verify failed"
SEND_FAILED = "Failed to send"


def check_spam(payload: SubmissionPayload, now: int) -> Optional[SilentlyDropped]:
    if payload.website:
        return SilentlyDropped(DropReason.HONEYPOT)
    delta = elapsed_ms(payload.form_time, now)
    if delta < MIN_FILL_MS:
        return SilentlyDropped(DropReason.TOO_FAST, elapsed_ms=delta)
    return None


def validate(payload: SubmissionPayload) -> Optional[Rejected]:
    if not payload.email or not payload.message:
        return Rejected(MISSING_FIELDS)
    return None


def evaluate(payload: SubmissionPayload, now: int) -> Optional[Union[SilentlyDropped, Rejected]]:
    """Spam checks first: a bot posting garbage still gets a success."""
    return check_spam(payload, now) or validate(payload)


def compose_message(payload: SubmissionPayload, config: MailConfig) -> MIMEText:
    body = (
        "You have a new contact request from the website.\n\n"
        f"Name: {payload.name or 'N/A'}\n"
        f"Email: {payload.email}\n"
        f"Phone: {payload.phone or 'N/A'}\n\n"
        f"Message:\n{payload.message}\n"
    )
    msg = MIMEText(body, "plain", "utf-8")
    msg["Subject"] = f"Website contact from {payload.name or 'Anonymous'}"
    msg["From"] = formataddr((config.from_name, config.from_address or ""))
    msg["To"] = ", ".join(config.to_addresses)
    msg["Reply-To"] = payload.email
    msg["Date"] = formatdate(localtime=True)
    domain = (config.from_address or "").rpartition("@")[2] or None
    msg["Message-ID"] = make_msgid(domain=domain)
    return msg


def process_submission(
    payload: SubmissionPayload,
    transport: MailTransport,
    config: MailConfig,
    now: Optional[int] = None,
) -> Outcome:
    verdict = evaluate(payload, now_ms() if now is None else now)
    if verdict is not None:
        if isinstance(verdict, SilentlyDropped):
            if verdict.reason is DropReason.HONEYPOT:
                log.warning(f"[contact] honeypot triggered, dropping submission: website={payload.website!r}")
            else:
                log.warning(f"[contact] fast submission detected, dropping. delta={verdict.elapsed_ms}ms")
        return verdict

    try:
        transport.verify()
        log.info("[contact] SMTP verify: OK")
    except MailTransportError as exc:
        log.error(f"[contact] SMTP verify failed: {exc}")
        return DispatchFailed(VERIFY_FAILED, str(exc))

    msg = compose_message(payload, config)
    try:
        info = transport.send(msg)
    except MailTransportError as exc:
        log.error(f"[contact] sendMail failed: {exc}")
        return DispatchFailed(SEND_FAILED, str(exc))

    log.info(
        f"[contact] sent message_id={info.message_id} accepted={info.accepted} response={info.response!r}"
    )
    return Delivered(message_id=info.message_id, response=info.response, accepted=info.accepted)
