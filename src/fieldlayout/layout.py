"""Layout and group aggregates with their persisted document form."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Tuple

from .elements import Element, element_from_dict


@dataclass(frozen=True)
class Group:
    name: str
    elements: Tuple[Element, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {"name": self.name, "elements": [el.to_dict() for el in self.elements]}

    @classmethod
    def from_dict(cls, doc: dict) -> "Group":
        return cls(
            name=doc.get("name") or "",
            elements=tuple(element_from_dict(el) for el in doc.get("elements") or []),
        )


@dataclass(frozen=True)
class Layout:
    id: int
    type: str
    groups: Tuple[Group, ...] = field(default_factory=tuple)

    def iter_elements(self) -> Iterator[Tuple[Group, Element]]:
        for group in self.groups:
            for element in group.elements:
                yield group, element

    def uids(self) -> List[str]:
        return [element.uid for _, element in self.iter_elements()]

    def with_groups(self, groups: Tuple[Group, ...]) -> "Layout":
        return Layout(id=self.id, type=self.type, groups=tuple(groups))

    def to_dict(self) -> dict:
        return {"id": self.id, "type": self.type, "groups": [g.to_dict() for g in self.groups]}

    @classmethod
    def from_dict(cls, doc: dict) -> "Layout":
        return cls(
            id=doc["id"],
            type=doc.get("type") or "",
            groups=tuple(Group.from_dict(g) for g in doc.get("groups") or []),
        )
