"""Form-side controller for the contact form.

The page is reached only through a ``FormView``, which reads field values and
renders UI states. That lets the submit flow run without a browser. The
controller repeats the endpoint's spam checks so a bot sees the same success
screen whether or not anything was sent.
"""
import logging
from enum import Enum
from typing import Callable, Dict, Optional, Protocol

import httpx

from app.lib.submission import (
    MIN_FILL_MS,
    SubmissionPayload,
    TEXT_FIELDS,
    elapsed_ms,
    is_placeholder,
    normalize_field,
    now_ms,
)

log = logging.getLogger("uvicorn.error")

DEFAULT_ACTION = "/api/send"
MSG_NEED_EMAIL = "Please enter your email."
MSG_NEED_MESSAGE = "Please enter your message."
MSG_SEND_FAILED = "Failed to send message. Please try again later."
MSG_NETWORK = "Network error. Please check your connection and try again."


class FormState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SENDING = "sending"
    BLOCKED_SILENTLY = "blocked_silently"
    SUCCESS_SHOWN = "success_shown"
    ERROR_SHOWN = "error_shown"


class FormView(Protocol):
    action: Optional[str]

    def read_fields(self) -> Dict[str, str]: ...

    def set_field(self, name: str, value: str) -> None: ...

    def render(self, state: FormState, message: Optional[str] = None) -> None: ...


class ContactFormController:
    """Drives one contact form.

    Pass either an ``httpx.AsyncClient`` (already pointed at the site) or a
    ``base_url`` such as ``"https://example.com"``. A relative form action like
    ``/api/send`` cannot be sent without one of them.
    """

    def __init__(
        self,
        view: FormView,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], int] = now_ms,
        base_url: str = "",
    ):
        if client is None and not base_url:
            raise ValueError("ContactFormController needs an httpx.AsyncClient or a base_url")
        self.view = view
        self.client = client
        self.base_url = base_url
        self.clock = clock
        self.state = FormState.IDLE

    @classmethod
    def attach(cls, view: Optional[FormView], **kwargs) -> Optional["ContactFormController"]:
        """Stamp ``form_time`` and return a controller, or None when the page has no form."""
        if view is None:
            return None
        ctl = cls(view, **kwargs)
        # set_field creates the hidden input when the markup lacks it
        ctl.view.set_field("form_time", str(ctl.clock()))
        ctl._show(FormState.IDLE)
        return ctl

    def _show(self, state: FormState, message: Optional[str] = None) -> None:
        self.state = state
        self.view.render(state, message)

    def on_focus(self, name: str) -> None:
        if name not in TEXT_FIELDS:
            return
        value = self.view.read_fields().get(name, "")
        if value.strip() and is_placeholder(value):
            self.view.set_field(name, "")

    def build_payload(self) -> Dict[str, str]:
        raw = self.view.read_fields()
        data = {f: normalize_field(raw.get(f)) for f in TEXT_FIELDS}
        data["website"] = (raw.get("website") or "").strip()
        data["form_time"] = raw.get("form_time") or str(self.clock())
        return data

    def _fail(self, message: str) -> FormState:
        self._show(FormState.ERROR_SHOWN, message)
        self._show(FormState.IDLE)
        return FormState.ERROR_SHOWN

    def _succeed(self) -> FormState:
        self._show(FormState.SUCCESS_SHOWN)
        return FormState.SUCCESS_SHOWN

    async def submit(self) -> FormState:
        """Run one submit attempt and return the state it ended in.

        Returns ERROR_SHOWN for any inline error (the view is already back to
        IDLE by then) and SUCCESS_SHOWN once the form has been replaced. A
        submit while a request is in flight, or after success, is ignored.
        """
        if self.state in (FormState.SENDING, FormState.SUCCESS_SHOWN):
            return self.state

        self._show(FormState.VALIDATING)
        data = self.build_payload()

        if not data["email"]:
            return self._fail(MSG_NEED_EMAIL)
        if not data["message"]:
            return self._fail(MSG_NEED_MESSAGE)

        payload = SubmissionPayload.from_body(data)
        if payload.website or elapsed_ms(payload.form_time, self.clock()) < MIN_FILL_MS:
            self._show(FormState.BLOCKED_SILENTLY)
            return self._succeed()

        self._show(FormState.SENDING)
        url = self.view.action or DEFAULT_ACTION
        try:
            if self.client is not None:
                res = await self.client.post(url, json=data)
            else:
                async with httpx.AsyncClient(base_url=self.base_url) as client:
                    res = await client.post(url, json=data)
        except httpx.HTTPError as e:
            log.error(f"[contact_form] submit error: {e}")
            return self._fail(MSG_NETWORK)

        try:
            body = res.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = None

        if not res.is_success or (body is not None and body.get("ok") is False):
            err = body.get("error") if body else None
            return self._fail(err or MSG_SEND_FAILED)

        return self._succeed()
