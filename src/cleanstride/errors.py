from __future__ import annotations


class ValidationError(Exception):
    pass


class NotFoundError(ValidationError):
    pass


class InvalidTransition(ValidationError):
    def __init__(self, kind: str, current: str, new: str) -> None:
        super().__init__(f"Cannot move {kind} from '{current}' to '{new}'.")
        self.kind = kind
        self.current = current
        self.new = new


class PermissionDenied(Exception):
    pass
