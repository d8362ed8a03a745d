from pydantic import BaseModel, Field
from typing import Optional, Dict, Any

from utils.config import SMTPDefaults


def parse_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        if value.strip() == "":
            return None
        return value.strip().lower() == "true"
    return None


def clean_text(value: Any) -> Optional[str]:
    """Stripped string, or None when nothing is left."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def usable_address(value: Any) -> Optional[str]:
    value = clean_text(value)
    if value and len(value) >= 3 and "@" in value:
        return value
    return None


def parse_port(value: Any) -> Optional[int]:
    try:
        port = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return port if port > 0 else None


class PartialSMTPSettings(BaseModel):
    """
    SMTP settings as found in one storage source. Any field may be missing;
    nothing outside the transport manager ever sees this type.
    """
    host: Optional[str] = None
    port: Optional[int] = None
    secure: Optional[bool] = None
    username: Optional[str] = None
    password: Optional[str] = None
    from_email: Optional[str] = None
    from_name: Optional[str] = None
    source: str = "unknown"

    @property
    def complete(self) -> bool:
        return not self.missing_fields()

    def missing_fields(self):
        missing = [f for f in ("host", "port", "username", "password") if not getattr(self, f)]
        if not usable_address(self.from_email):
            missing.append("from_email")
        return missing

    @classmethod
    def from_mapping(cls, data: Dict[str, Any], source: str) -> "PartialSMTPSettings":
        """Accepts both the smtp_config JSON shape and the smtp key/value shape."""
        port = parse_port(data.get("smtp_port"))
        secure = parse_bool(data.get("smtp_secure"))
        if port == 465:
            secure = True
        return cls(
            host=clean_text(data.get("smtp_host")),
            port=port,
            secure=secure,
            username=clean_text(data.get("smtp_username")),
            password=clean_text(data.get("smtp_password")),
            from_email=clean_text(data.get("from_email") or data.get("smtp_from_email")),
            from_name=clean_text(data.get("from_name") or data.get("smtp_from_name")),
            source=source,
        )


class SMTPSettings(BaseModel):
    """Fully populated transport configuration."""
    host: str = Field(min_length=1)
    port: int = Field(gt=0)
    secure: bool
    username: str
    password: str
    from_email: str = Field(min_length=3)
    from_name: str
    source: str = "defaults"

    model_config = {"frozen": True}

    @property
    def requires_login(self) -> bool:
        return bool(self.username and self.password)

    @property
    def sender(self) -> str:
        return f"{self.from_name} <{self.from_email}>"

    @classmethod
    def guaranteed(cls, partial: Optional[PartialSMTPSettings], defaults: SMTPDefaults) -> "SMTPSettings":
        """
        Fills every field of `partial` that is empty or unusable from
        `defaults`, field by field. A default that is itself unusable falls
        back to the built-in value, so this never raises.
        """
        partial = partial or PartialSMTPSettings(source="defaults")
        builtin = SMTPDefaults()
        port = parse_port(partial.port) or parse_port(defaults.port) or builtin.port
        if partial.secure is not None:
            secure = partial.secure
        elif partial.port:
            secure = partial.port == 465
        else:
            secure = defaults.secure
        return cls(
            host=clean_text(partial.host) or clean_text(defaults.host) or builtin.host,
            port=port,
            secure=secure,
            username=clean_text(partial.username) or clean_text(defaults.username) or "",
            password=clean_text(partial.password) or clean_text(defaults.password) or "",
            from_email=(usable_address(partial.from_email) or usable_address(defaults.from_email)
                        or builtin.from_email),
            from_name=clean_text(partial.from_name) or clean_text(defaults.from_name) or builtin.from_name,
            source=partial.source,
        )

    def masked(self) -> Dict[str, Any]:
        data = self.model_dump()
        data["password"] = "***" if self.password else ""
        data["username"] = self.username[:3] + "***" if self.username else ""
        return data
