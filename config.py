"""
Application configuration.

Settings are read once from the environment (a local .env file is honoured)
and handed to the app through the `get_settings` dependency, so routes and
services never read os.environ themselves.
"""
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple

from dotenv import load_dotenv


@dataclass(frozen=True)
class CompanyInfo:
    name: str = "Sparkcode Solutions"
    address: str = "Suryabinayak-5, Bhaktapur"
    pan_no: str = "130302052"
    email: str = "office@sparkcode.tech"
    phone: str = "+9779869195575"


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str] = None
    database_name: Optional[str] = None
    allowed_emails: Tuple[str, ...] = ()
    founder_email: Optional[str] = None
    jwt_secret: str = "change-this-secret"
    token_ttl_minutes: int = 60 * 12
    bootstrap_password: Optional[str] = None
    log_level: str = "INFO"
    company: CompanyInfo = field(default_factory=CompanyInfo)

    def is_email_allowed(self, email: Optional[str]) -> bool:
        if not email:
            return False
        return email.strip().lower() in self.allowed_emails

    def is_founder(self, email: Optional[str]) -> bool:
        if not email or not self.founder_email:
            return False
        return email.strip().lower() == self.founder_email


def _split_emails(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return ()
    return tuple(e.strip().lower() for e in raw.split(",") if e.strip())


def load_settings() -> Settings:
    load_dotenv()
    founder = os.getenv("FOUNDER_EMAIL")
    return Settings(
        database_url=os.getenv("DATABASE_URL"),
        database_name=os.getenv("DATABASE_NAME"),
        allowed_emails=_split_emails(os.getenv("ALLOWED_EMAILS")),
        founder_email=founder.strip().lower() if founder else None,
        jwt_secret=os.getenv("JWT_SECRET", "change-this-secret"),
        token_ttl_minutes=int(os.getenv("TOKEN_TTL_MINUTES", str(60 * 12))),
        bootstrap_password=os.getenv("BOOTSTRAP_PASSWORD") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        company=CompanyInfo(
            name=os.getenv("COMPANY_NAME", CompanyInfo.name),
            address=os.getenv("COMPANY_ADDRESS", CompanyInfo.address),
            pan_no=os.getenv("COMPANY_PAN_NO", CompanyInfo.pan_no),
            email=os.getenv("COMPANY_EMAIL", CompanyInfo.email),
            phone=os.getenv("COMPANY_PHONE", CompanyInfo.phone),
        ),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()


def logging_config(level: str = "INFO") -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(module)s.%(funcName)s:%(lineno)d - %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "level": level,
            },
        },
        "root": {
            "handlers": ["console"],
            "level": level,
        },
    }
