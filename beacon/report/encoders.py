"""Dual encoding of report facts.

The builder writes each fact exactly once, through a DualEncoder, which
hands the same call to the legacy sink (attribute tree) and the
structured sink (record fields). A fact that only exists in one
encoding passes `name=None` (structured only) or `field=None` (legacy
only) instead of being written from a second code path.
"""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

from beacon.errors import ProgrammingFault
from beacon.report.sections import SectionStack

INT32_MIN, INT32_MAX = -(2 ** 31), 2 ** 31 - 1
INT64_MIN, INT64_MAX = -(2 ** 63), 2 ** 63 - 1


@dataclass(frozen=True)
class Field:
    """Reference to one attribute of a structured record message."""
    message: Any
    attr: str

    def set(self, value: Any) -> None:
        if not hasattr(self.message, self.attr):
            raise ProgrammingFault(
                f"{type(self.message).__name__} has no field '{self.attr}'"
            )
        setattr(self.message, self.attr, value)


def _check_int(name: str | None, value: Any, low: int, high: int) -> int:
    # bool is accepted and widened to 0/1
    if not isinstance(value, int):
        raise ProgrammingFault(
            f"Attribute {name!r} expects an integer, got {type(value).__name__}"
        )
    if not low <= int(value) <= high:
        raise ProgrammingFault(f"Attribute {name!r} out of range: {value}")
    return int(value)


class ReportSink:
    """Interface both encodings implement."""

    def open_section(self, name: str) -> None:
        raise NotImplementedError

    def close_section(self) -> None:
        raise NotImplementedError

    def write_attribute(self, name: str | None, value: str, field: Field | None = None) -> None:
        raise NotImplementedError

    def write_int_attribute(self, name: str | None, value: int, field: Field | None = None) -> None:
        raise NotImplementedError

    def write_int64_attribute(self, name: str | None, value: int, field: Field | None = None) -> None:
        raise NotImplementedError


class LegacySink(ReportSink):
    """Writes attributes into the currently open legacy section."""

    def __init__(self, sections: SectionStack) -> None:
        self.sections = sections
        self._indices: list[int] = []

    def open_section(self, name: str) -> None:
        self._indices.append(self.sections.open(name))

    def close_section(self) -> None:
        if not self._indices:
            raise ProgrammingFault("close_section() with no open section")
        self.sections.close(self._indices.pop())

    def write_attribute(self, name, value, field=None):
        if name is None:
            return
        self.sections.set_attribute(name, "" if value is None else str(value))

    def write_int_attribute(self, name, value, field=None):
        value = _check_int(name, value, INT32_MIN, INT32_MAX)
        if name is not None:
            self.sections.set_attribute(name, str(value))

    def write_int64_attribute(self, name, value, field=None):
        value = _check_int(name, value, INT64_MIN, INT64_MAX)
        if name is not None:
            self.sections.set_attribute(name, str(value))


class StructuredSink(ReportSink):
    """Assigns values to record fields. Sections have no structured form."""

    def open_section(self, name):
        pass

    def close_section(self):
        pass

    def write_attribute(self, name, value, field=None):
        if field is not None:
            field.set(value)

    def write_int_attribute(self, name, value, field=None):
        _check_int(name, value, INT32_MIN, INT32_MAX)
        if field is not None:
            field.set(value)

    def write_int64_attribute(self, name, value, field=None):
        _check_int(name, value, INT64_MIN, INT64_MAX)
        if field is not None:
            field.set(value)


class DualEncoder(ReportSink):
    """Fans every write out to the legacy and structured sinks."""

    def __init__(self, legacy: LegacySink, structured: StructuredSink) -> None:
        self.sinks: tuple[ReportSink, ...] = (legacy, structured)

    def open_section(self, name):
        for sink in self.sinks:
            sink.open_section(name)

    def close_section(self):
        for sink in self.sinks:
            sink.close_section()

    @contextmanager
    def section(self, name: str) -> Iterator[None]:
        self.open_section(name)
        try:
            yield
        finally:
            self.close_section()

    def write_attribute(self, name, value, field=None):
        for sink in self.sinks:
            sink.write_attribute(name, value, field)

    def write_int_attribute(self, name, value, field=None):
        for sink in self.sinks:
            sink.write_int_attribute(name, value, field)

    def write_int64_attribute(self, name, value, field=None):
        for sink in self.sinks:
            sink.write_int64_attribute(name, value, field)
