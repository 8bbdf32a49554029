"""Fault taxonomy for report building."""
from __future__ import annotations

from dataclasses import dataclass


class ProgrammingFault(AssertionError):
    """A defect in the calling code. Aborts the report being built.

    Raised for writes after lock, out-of-order section closes, and
    values the encoders have no representation for.
    """


@dataclass(frozen=True)
class DataQualityFault:
    """Recoverable problem with the source data. Collected, never raised."""
    kind: str
    detail: str = ""
