from typing import Any, Optional


class ConfigLoadError(Exception):
    """Raised when server settings cannot be loaded or fail validation."""

    def __init__(self, message: str, source: Optional[str] = None, details: Optional[Any] = None):
        self.message = message
        self.source = source
        self.details = details
        full_message = f"{message}"
        if source:
            full_message += f" [Source: {source}]"
        if details:
            full_message += f"\nDetails:\n{details}"
        super().__init__(full_message)
