from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


class PipelineError(Exception):
    """Base class for failures inside the image pipeline."""


class ImageValidationError(PipelineError):
    """Input violates size/type limits. The only failure surfaced to callers."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid image")


class DecodeError(PipelineError):
    pass


class EncodeError(PipelineError):
    pass


class StoreError(PipelineError):
    pass


class DeleteError(StoreError):
    pass


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a pipeline stage: either a value or the error that stopped it."""

    value: T | None = None
    error: PipelineError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> Outcome[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: PipelineError) -> Outcome[T]:
        return cls(error=error)
