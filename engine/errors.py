class NotificationError(Exception):
    """Base class for failures inside the notification engine."""
    kind = "internal_error"


class TriggerValidationError(NotificationError):
    """Trigger payload missing or malformed; raised before any side effect."""
    kind = "validation_error"


class TemplateNotFoundError(NotificationError):
    """No active template resolves for the requested key or type."""
    kind = "template_not_found"


class TemplateParseError(NotificationError):
    """Stored template content could not be parsed."""
    kind = "template_parse_error"


class TemplateStoreError(NotificationError):
    """The template store could not be reached."""
    kind = "template_not_found"


class TransportError(NotificationError):
    """Mail channel creation, verification or send failed."""
    kind = "transport_error"
