"""Legacy attribute tree: sections, the open-section stack, XML output."""
from __future__ import annotations

import xml.etree.ElementTree as ET
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from beacon.errors import ProgrammingFault


@dataclass
class Section:
    """A named scope holding string attributes and child sections.

    Children are indices into the owning SectionStack's arena.
    """
    name: str
    attributes: dict[str, str] = field(default_factory=dict)
    children: list[int] = field(default_factory=list)


class SectionStack:
    """Arena of Section nodes plus the path of currently open ones."""

    def __init__(self) -> None:
        self.nodes: list[Section] = []
        self.roots: list[int] = []
        self._open: list[int] = []

    @property
    def depth(self) -> int:
        return len(self._open)

    def current(self) -> Section:
        if not self._open:
            raise ProgrammingFault("No section is open")
        return self.nodes[self._open[-1]]

    def open(self, name: str) -> int:
        index = len(self.nodes)
        self.nodes.append(Section(name=name))
        if self._open:
            self.nodes[self._open[-1]].children.append(index)
        else:
            self.roots.append(index)
        self._open.append(index)
        return index

    def close(self, index: int | None = None) -> Section:
        """Close the innermost section.

        When index is given it must be the innermost open section;
        anything else means the builder nested its scopes wrongly.
        """
        if not self._open:
            raise ProgrammingFault("close() with no open section")
        top = self._open[-1]
        if index is not None and index != top:
            raise ProgrammingFault(
                f"Section '{self.nodes[index].name}' closed while "
                f"'{self.nodes[top].name}' is still open"
            )
        self._open.pop()
        return self.nodes[top]

    @contextmanager
    def scoped(self, name: str) -> Iterator[Section]:
        index = self.open(name)
        try:
            yield self.nodes[index]
        finally:
            self.close(index)

    def set_attribute(self, name: str, value: str) -> None:
        self.current().attributes[name] = value

    # ── traversal / output ───────────────────────────────────────────

    def children_of(self, section: Section) -> list[Section]:
        return [self.nodes[i] for i in section.children]

    def root_sections(self) -> list[Section]:
        return [self.nodes[i] for i in self.roots]

    def find_all(self, path: str) -> list[Section]:
        """Sections matching a slash-separated name path from the roots."""
        parts = [p for p in path.split("/") if p]
        level = self.root_sections()
        for depth, part in enumerate(parts):
            matches = [s for s in level if s.name == part]
            if depth == len(parts) - 1:
                return matches
            level = [child for s in matches for child in self.children_of(s)]
        return []

    def to_element(self, section: Section) -> ET.Element:
        element = ET.Element(section.name, attrib=dict(section.attributes))
        for child in self.children_of(section):
            element.append(self.to_element(child))
        return element
