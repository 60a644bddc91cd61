"""
core/errors.py
--------------
Typed, recoverable failures raised by the simulation core.
"""


class PaperGateError(Exception):
    """Base class for every error the core surfaces to callers."""


class InvalidProposal(PaperGateError, ValueError):
    """Proposal rejected at open (non-positive amount/price, bad fields)."""


class InvalidExitPrice(PaperGateError, ValueError):
    """Close requested with a non-finite or non-positive exit price."""


class UnknownPosition(PaperGateError, KeyError):
    """Close requested for an id that is not open (missing or already closed)."""

    def __init__(self, identifier: str) -> None:
        super().__init__(identifier)
        self.identifier = identifier

    def __str__(self) -> str:
        return f"no open position with id {self.identifier!r}"


class NotReady(PaperGateError):
    """Switch to LIVE requested while the promotion gate fails."""
