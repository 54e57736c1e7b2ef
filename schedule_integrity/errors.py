from __future__ import annotations

from typing import Optional


class InputError(ValueError):
    """A required request field is missing or malformed."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason


class NotFoundError(LookupError):
    """A referenced resource or project is absent from the snapshot."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} '{identifier}' not found")
        self.kind = kind
        self.identifier = identifier


class CollaboratorError(RuntimeError):
    """The entity store could not produce a snapshot."""

    def __init__(self, source: str, reason: str, path: Optional[str] = None) -> None:
        location = f" ({path})" if path else ""
        super().__init__(f"{source} unavailable{location}: {reason}")
        self.source = source
        self.reason = reason
        self.path = path


# Mapping of engine exceptions to HTTP status codes
HTTP_STATUS_BY_ERROR = {
    InputError: 400,
    NotFoundError: 404,
    CollaboratorError: 502,
}
