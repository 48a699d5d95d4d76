from __future__ import annotations


class BeachBoardError(Exception):
    """Base class for board errors."""


class ElementNotFoundError(BeachBoardError, KeyError):
    def __init__(self, element_id: str) -> None:
        super().__init__(element_id)
        self.element_id = element_id

    def __str__(self) -> str:
        return f"unknown element: {self.element_id}"


class InvalidStepError(BeachBoardError, ValueError):
    pass


class LedgerValidationError(BeachBoardError, ValueError):
    pass


class RemoteError(BeachBoardError):
    """Failure talking to the remote document store."""

    kind = "error"


class RemoteUnavailableError(RemoteError):
    kind = "unavailable"


class RemotePermissionError(RemoteError):
    kind = "permission_denied"
