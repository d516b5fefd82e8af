from __future__ import annotations


class DrapecostError(Exception):
    """Base class for errors raised outside the calculation engine."""


class PolicyValidationError(DrapecostError):
    """A policy or catalog document failed schema validation."""

    def __init__(self, source: str, problems: list[str]) -> None:
        self.source = source
        self.problems = list(problems)
        super().__init__(f"{source}: " + "; ".join(self.problems))


class InvalidRequestError(DrapecostError):
    """A quote request is structurally unusable (not a data problem the engine can degrade)."""


__all__ = ["DrapecostError", "PolicyValidationError", "InvalidRequestError"]
