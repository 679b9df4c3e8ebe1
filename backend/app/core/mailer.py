import logging
import smtplib
import ssl
from dataclasses import dataclass, field
from email.message import Message
from email.utils import getaddresses
from typing import List, Optional, Protocol, Tuple

log = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class MailConfig:
    host: Optional[str]
    port: int = 587
    secure: bool = False
    username: Optional[str] = None
    password: Optional[str] = None
    tls_verify: bool = True
    from_address: Optional[str] = None
    from_name: str = "Website"
    to_addresses: Tuple[str, ...] = ()
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, s) -> "MailConfig":
        recipients = tuple(addr for _, addr in getaddresses([s.to_email or ""]) if addr)
        return cls(
            host=s.smtp_host,
            port=s.smtp_port,
            secure=s.smtp_secure,
            username=s.smtp_user,
            password=s.smtp_pass,
            tls_verify=s.smtp_tls_verify,
            from_address=s.from_email or s.smtp_user,
            from_name=s.mail_from_name,
            to_addresses=recipients,
            timeout=s.smtp_timeout,
        )


@dataclass
class SendInfo:
    message_id: Optional[str]
    response: str
    accepted: List[str] = field(default_factory=list)


class MailTransportError(Exception):
    """Raised when the SMTP server cannot be reached, refuses auth, or rejects the message."""

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"{stage}: {cause}")
        self.stage = stage
        self.cause = cause

    def __str__(self) -> str:
        return str(self.cause) or self.cause.__class__.__name__


class MailTransport(Protocol):
    def verify(self) -> None: ...

    def send(self, msg: Message) -> SendInfo: ...


def _tls_context(verify: bool) -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    if not verify:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return ctx


class SmtpTransport:
    """One connection per call; nothing is pooled between requests."""

    def __init__(self, config: MailConfig):
        self.config = config

    def _connect(self) -> smtplib.SMTP:
        cfg = self.config
        if not cfg.host:
            raise smtplib.SMTPException("SMTP_HOST is not configured")
        ctx = _tls_context(cfg.tls_verify)
        if cfg.secure:
            smtp = smtplib.SMTP_SSL(cfg.host, cfg.port, timeout=cfg.timeout, context=ctx)
        else:
            smtp = smtplib.SMTP(cfg.host, cfg.port, timeout=cfg.timeout)
        try:
            smtp.ehlo()
            if not cfg.secure and smtp.has_extn("starttls"):
                smtp.starttls(context=ctx)
                smtp.ehlo()
            if cfg.username:
                smtp.login(cfg.username, cfg.password or "")
        except BaseException:
            smtp.close()
            raise
        return smtp

    def verify(self) -> None:
        try:
            smtp = self._connect()
            smtp.quit()
        except (smtplib.SMTPException, OSError) as exc:
            raise MailTransportError("verify", exc) from exc

    def send(self, msg: Message) -> SendInfo:
        sender = self.config.from_address or ""
        recipients = list(self.config.to_addresses)
        try:
            smtp = self._connect()
            try:
                code, resp = smtp.mail(sender)
                if code != 250:
                    smtp.rset()
                    raise smtplib.SMTPSenderRefused(code, resp, sender)

                accepted: List[str] = []
                refused = {}
                for rcpt in recipients:
                    code, resp = smtp.rcpt(rcpt)
                    if code in (250, 251):
                        accepted.append(rcpt)
                    else:
                        refused[rcpt] = (code, resp)
                if not accepted:
                    smtp.rset()
                    raise smtplib.SMTPRecipientsRefused(refused)

                # raises SMTPDataError on anything but 250
                code, resp = smtp.data(msg.as_bytes())
            except BaseException:
                smtp.close()
                raise
            try:
                smtp.quit()
            except (smtplib.SMTPException, OSError):
                smtp.close()
        except (smtplib.SMTPException, OSError) as exc:
            raise MailTransportError("send", exc) from exc

        if refused:
            log.warning(f"[mailer] recipients refused: {sorted(refused)}")
        response = f"{code} {resp.decode('utf-8', 'replace')}"
        return SendInfo(message_id=msg.get("Message-ID"), response=response, accepted=accepted)
