# app/routers/health.py
from fastapi import APIRouter, Depends
from app.core.mailer import MailConfig
from app.routers.contact import get_mail_config

router = APIRouter(prefix="/health", tags=["health"])

@router.get("")
async def health_root():
    return {"status": "ok"}

@router.get("/mail")
async def health_mail(config: MailConfig = Depends(get_mail_config)):
    # configuration presence only; never echoes credentials or hits the SMTP server
    return {
        "ok": bool(config.host and config.from_address and config.to_addresses),
        "smtp_host": bool(config.host),
        "smtp_port": config.port,
        "secure": config.secure,
        "auth": bool(config.username and config.password),
        "tls_verify": config.tls_verify,
        "from_address": bool(config.from_address),
        "recipients": len(config.to_addresses),
    }
