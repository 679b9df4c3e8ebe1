import pytest

from app.core.mailer import MailConfig, MailTransportError, SendInfo
from app.lib.submission import (
    MIN_FILL_MS,
    Delivered,
    DispatchFailed,
    DropReason,
    Rejected,
    SilentlyDropped,
    SubmissionPayload,
    compose_message,
    elapsed_ms,
    evaluate,
    normalize_form_time,
    parse_form_time,
    process_submission,
)

NOW = 1_700_000_000_000

CONFIG = MailConfig(
    host="smtp.example.com",
    from_address="web@example.com",
    from_name="Example Website",
    to_addresses=("info@example.com",),
)


class FakeTransport:
    def __init__(self, verify_error=None, send_error=None):
        self.verify_error = verify_error
        self.send_error = send_error
        self.verified = 0
        self.sent = []

    def verify(self):
        self.verified += 1
        if self.verify_error:
            raise self.verify_error

    def send(self, msg):
        if self.send_error:
            raise self.send_error
        self.sent.append(msg)
        return SendInfo(message_id=msg["Message-ID"], response="250 2.0.0 Ok: queued", accepted=["info@example.com"])


def payload(**kw):
    body = {"email": "a@b.com", "message": "hi", "website": "", "form_time": NOW - 6000}
    body.update(kw)
    return SubmissionPayload.from_body(body)


def test_seconds_timestamps_are_scaled_to_ms():
    assert normalize_form_time(1_700_000_000, NOW) == 1_700_000_000_000
    assert normalize_form_time(99_999_999_999, NOW) == 99_999_999_999_000


def test_ms_timestamps_are_kept():
    assert normalize_form_time(100_000_000_000, NOW) == 100_000_000_000
    assert normalize_form_time(str(NOW - 10), NOW) == NOW - 10


@pytest.mark.parametrize("raw", [None, "", "abc", 0, -5, "-12"])
def test_missing_or_non_positive_form_time_counts_as_now(raw):
    assert elapsed_ms(raw, NOW) == 0


def test_parse_form_time_reads_leading_integer():
    assert parse_form_time(" 42abc") == 42
    assert parse_form_time("1.7e12") == 1
    assert parse_form_time(1.5e12) == 1_500_000_000_000
    assert parse_form_time(float("nan")) == 0
    assert parse_form_time(True) == 0


def test_placeholder_labels_equal_empty():
    assert payload(email="E-mail") == payload(email="")
    assert payload(message="  Message ") == payload(message="")
    p = payload(name="Name", phone="phone")
    assert p.name == "" and p.phone == ""


def test_fields_are_trimmed_and_coerced():
    p = SubmissionPayload.from_body({"name": "  Ann ", "email": " a@b.com ", "phone": 5551234, "message": None})
    assert p.name == "Ann"
    assert p.email == "a@b.com"
    assert p.phone == "5551234"
    assert p.message == ""


def test_non_object_body_is_empty_payload():
    assert SubmissionPayload.from_body(["x"]) == SubmissionPayload()
    assert SubmissionPayload.from_body(None).form_time is None


def test_honeypot_wins_over_everything():
    verdict = evaluate(payload(website="http://spam", email=""), NOW)
    assert verdict == SilentlyDropped(DropReason.HONEYPOT)


def test_too_fast_is_dropped_even_when_fields_are_invalid():
    verdict = evaluate(payload(email="", form_time=NOW - 100), NOW)
    assert isinstance(verdict, SilentlyDropped)
    assert verdict.reason is DropReason.TOO_FAST
    assert verdict.elapsed_ms == 100


def test_threshold_boundary():
    assert evaluate(payload(form_time=NOW - MIN_FILL_MS + 1), NOW).reason is DropReason.TOO_FAST
    assert evaluate(payload(form_time=NOW - MIN_FILL_MS), NOW) is None


def test_missing_fields_rejected_after_spam_checks():
    assert evaluate(payload(email=""), NOW) == Rejected("Missing required fields")
    assert evaluate(payload(message="   "), NOW) == Rejected("Missing required fields")


def test_compose_message_headers_and_body():
    msg = compose_message(payload(name="Ann", phone=""), CONFIG)
    assert msg["Reply-To"] == "a@b.com"
    assert msg["Subject"] == "Website contact from Ann"
    assert msg["From"] == "Example Website <web@example.com>"
    assert msg["To"] == "info@example.com"
    assert msg["Message-ID"].endswith("@example.com>")
    text = msg.get_payload(decode=True).decode("utf-8")
    assert "Phone: N/A" in text
    assert text.endswith("Message:\nhi\n")


def test_anonymous_subject():
    assert compose_message(payload(), CONFIG)["Subject"] == "Website contact from Anonymous"


def test_process_delivers_exactly_once():
    transport = FakeTransport()
    outcome = process_submission(payload(message="hello there"), transport, CONFIG, now=NOW)

    assert isinstance(outcome, Delivered)
    assert outcome.response == "250 2.0.0 Ok: queued"
    assert transport.verified == 1
    assert len(transport.sent) == 1
    assert transport.sent[0]["Reply-To"] == "a@b.com"
    assert "hello there" in transport.sent[0].get_payload(decode=True).decode("utf-8")


@pytest.mark.parametrize("kw", [{"website": "x"}, {"form_time": NOW - 10}, {"form_time": None}, {"email": ""}])
def test_process_never_touches_transport_for_dropped_or_rejected(kw):
    transport = FakeTransport()
    outcome = process_submission(payload(**kw), transport, CONFIG, now=NOW)
    assert isinstance(outcome, (SilentlyDropped, Rejected))
    assert transport.verified == 0
    assert transport.sent == []


def test_verify_failure_is_distinct_from_send_failure():
    bad_verify = FakeTransport(verify_error=MailTransportError("verify", OSError("connection refused")))
    outcome = process_submission(payload(), bad_verify, CONFIG, now=NOW)
    assert outcome == DispatchFailed("SMTP verify failed", "connection refused")
    assert bad_verify.sent == []

    bad_send = FakeTransport(send_error=MailTransportError("send", OSError("broken pipe")))
    outcome = process_submission(payload(), bad_send, CONFIG, now=NOW)
    assert outcome == DispatchFailed("Failed to send", "broken pipe")


def test_falsy_honeypot_values_do_not_trip():
    for value in (0, False, None, "", "   "):
        assert payload(website=value).website == ""
    assert evaluate(payload(website=0), NOW) is None
    assert payload(website=1).website == "1"


def test_header_fields_are_collapsed_to_one_line():
    p = payload(name="Ann\r\nBcc: evil@x.com", email=" a@b.com\n", phone="555\t 1234")
    assert p.name == "Ann Bcc: evil@x.com"
    assert p.email == "a@b.com"
    assert p.phone == "555 1234"
    assert payload(message="line one\nline two").message == "line one\nline two"

    msg = compose_message(p, CONFIG)
    assert msg["Bcc"] is None
    assert b"\nBcc:" not in msg.as_bytes()
