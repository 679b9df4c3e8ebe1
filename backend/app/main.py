# app/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from app.core.settings import settings
from app.routers.contact import method_not_allowed, router as contact_router
from app.routers.health import router as health_router

app = FastAPI(title=settings.api_title)
# wrong-method calls on /api/send get the same {ok, error} body as every other failure
app.add_exception_handler(StarletteHTTPException, method_not_allowed)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=False,
    allow_methods=["POST"],
    allow_headers=["Content-Type"],
)

if not settings.smtp_host:
    logging.getLogger("uvicorn.error").warning("[main] SMTP_HOST is not set; /api/send will fail at verify")

# Routers
app.include_router(contact_router)
app.include_router(health_router)
