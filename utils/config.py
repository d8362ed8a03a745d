import os
import logging
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

logger = logging.getLogger("storefront_notifications")


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric value for {name}: {value!r}")
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric value for {name}: {value!r}")
        return default


class SMTPDefaults(BaseModel):
    host: str = "localhost"
    port: int = 587
    secure: bool = False
    username: str = ""
    password: str = ""
    from_email: str = "info@brennholz-koenig.de"
    from_name: str = "Brennholzkönig"


class SMTPEnvironment(BaseModel):
    """SMTP override taken straight from the process environment."""
    host: Optional[str] = None
    port: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    from_email: Optional[str] = None


class AppConfig(BaseModel):
    supabase_url: str = "http://localhost:54321"
    supabase_key: str = ""
    admin_email: str = "admin@brennholzkoenig.de"
    company_name: str = "Brennholzkönig"
    support_email: str = "info@brennholz-koenig.de"
    smtp_defaults: SMTPDefaults = SMTPDefaults()
    smtp_environment: SMTPEnvironment = SMTPEnvironment()
    smtp_timeout_seconds: float = 5.0
    template_negative_ttl_seconds: float = 30.0
    # 0 disables the background scheduler
    scheduler_interval_seconds: int = 0
    invoice_template_dir: str = os.path.join(
        os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "templates", "invoices"
    )
    log_level: str = "INFO"
    log_file: Optional[str] = "notifications.log"


def load_config() -> AppConfig:
    """Builds the application configuration from the environment (and .env, if present)."""
    load_dotenv()

    defaults = SMTPDefaults(
        host=os.getenv("SMTP_DEFAULT_HOST") or SMTPDefaults().host,
        port=_env_int("SMTP_DEFAULT_PORT", SMTPDefaults().port),
        secure=_env_bool("SMTP_DEFAULT_SECURE", SMTPDefaults().secure),
        username=os.getenv("SMTP_DEFAULT_USERNAME", ""),
        password=os.getenv("SMTP_DEFAULT_PASSWORD", ""),
        from_email=os.getenv("SMTP_DEFAULT_FROM_EMAIL") or SMTPDefaults().from_email,
        from_name=os.getenv("SMTP_DEFAULT_FROM_NAME") or SMTPDefaults().from_name,
    )

    environment = SMTPEnvironment(
        host=os.getenv("EMAIL_SERVER_HOST"),
        port=os.getenv("EMAIL_SERVER_PORT"),
        username=os.getenv("EMAIL_SERVER_USER"),
        password=os.getenv("EMAIL_SERVER_PASSWORD"),
        from_email=os.getenv("EMAIL_FROM"),
    )

    config = AppConfig(
        supabase_url=os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL") or AppConfig().supabase_url,
        supabase_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""),
        admin_email=os.getenv("ADMIN_EMAIL") or AppConfig().admin_email,
        company_name=os.getenv("COMPANY_NAME") or AppConfig().company_name,
        support_email=os.getenv("SUPPORT_EMAIL") or AppConfig().support_email,
        smtp_defaults=defaults,
        smtp_environment=environment,
        smtp_timeout_seconds=_env_float("SMTP_TIMEOUT_SECONDS", 5.0),
        template_negative_ttl_seconds=_env_float("TEMPLATE_NEGATIVE_TTL_SECONDS", 30.0),
        scheduler_interval_seconds=_env_int("SCHEDULER_INTERVAL_SECONDS", 0),
        invoice_template_dir=os.getenv("INVOICE_TEMPLATE_DIR") or AppConfig().invoice_template_dir,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_file=os.getenv("LOG_FILE", "notifications.log") or None,
    )
    return config
