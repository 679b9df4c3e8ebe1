# app/core/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    api_title: str = Field(default="Contact Relay API", alias="API_TITLE")
    cors_origins: str = Field(default="http://localhost:5173", alias="CORS_ORIGINS")

    # SMTP relay (Mailu or any STARTTLS/implicit-TLS server)
    smtp_host: Optional[str] = Field(default=None, alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    # true for 465 (implicit TLS), false for STARTTLS on 587
    smtp_secure: bool = Field(default=False, alias="SMTP_SECURE")
    smtp_user: Optional[str] = Field(default=None, alias="SMTP_USER")
    smtp_pass: Optional[str] = Field(default=None, alias="SMTP_PASS")
    # anything but "false" keeps certificate checks on; "false" only for self-signed certs
    tls_reject_unauthorized: str = Field(default="true", alias="MAILU_TLS_REJECT_UNAUTHORIZED")
    smtp_timeout: float = Field(default=30.0, alias="SMTP_TIMEOUT")

    # Falls back to SMTP_USER when unset
    from_email: Optional[str] = Field(default=None, alias="FROM_EMAIL")
    mail_from_name: str = Field(default="Windek Fisheries Website", alias="MAIL_FROM_NAME")
    to_email: str = Field(default="info@windekfisheries.com", alias="TO_EMAIL")

    @property
    def smtp_tls_verify(self) -> bool:
        return self.tls_reject_unauthorized.strip().lower() != "false"

settings = Settings()
