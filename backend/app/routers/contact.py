import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.mailer import MailConfig, MailTransport, SmtpTransport
from app.core.settings import settings
from app.lib.submission import (
    Delivered,
    DispatchFailed,
    Outcome,
    Rejected,
    SilentlyDropped,
    SubmissionPayload,
    process_submission,
)

router = APIRouter(prefix="/api", tags=["contact"])
log = logging.getLogger("uvicorn.error")

SENT = "Message sent"
SEND_PATH = "/api/send"


def get_mail_config() -> MailConfig:
    return MailConfig.from_settings(settings)


def get_mail_transport(config: MailConfig = Depends(get_mail_config)) -> MailTransport:
    return SmtpTransport(config)


def to_response(outcome: Outcome) -> JSONResponse:
    if isinstance(outcome, Delivered):
        return JSONResponse(
            {
                "ok": True,
                "message": SENT,
                "info": {"messageId": outcome.message_id, "response": outcome.response},
            }
        )
    if isinstance(outcome, SilentlyDropped):
        # same body as a real delivery
        return JSONResponse({"ok": True, "message": SENT})
    if isinstance(outcome, Rejected):
        return JSONResponse({"ok": False, "error": outcome.error}, status_code=400)
    if isinstance(outcome, DispatchFailed):
        return JSONResponse(
            {"ok": False, "error": outcome.error, "details": outcome.details},
            status_code=500,
        )
    raise TypeError(f"unknown outcome: {outcome!r}")


async def _read_body(request: Request):
    raw = await request.body()
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        log.warning("[contact] request body is not valid JSON; treating as empty")
        return {}


@router.post("/send")
async def send(
    request: Request,
    transport: MailTransport = Depends(get_mail_transport),
    config: MailConfig = Depends(get_mail_config),
):
    try:
        payload = SubmissionPayload.from_body(await _read_body(request))
        outcome = await run_in_threadpool(process_submission, payload, transport, config)
        return to_response(outcome)
    except Exception as e:
        log.exception(f"[contact] handler error: {e}")
        return JSONResponse(
            {"ok": False, "error": "Server error", "details": str(e)},
            status_code=500,
        )


async def method_not_allowed(request: Request, exc: StarletteHTTPException):
    if exc.status_code != 405 or request.url.path != SEND_PATH:
        return await http_exception_handler(request, exc)
    return JSONResponse(
        {"ok": False, "error": "Method Not Allowed"},
        status_code=405,
        headers={"Allow": "POST"},
    )
