"""Per-call lookup of persisted layout elements by uid."""

from __future__ import annotations

from typing import Dict, Iterator

from fieldlayout.elements import Element
from fieldlayout.errors import PersistenceError
from fieldlayout.layout import Layout


class LayoutIndex:
    def __init__(self, elements: Dict[str, Element]) -> None:
        self._elements = elements
        self._claimed: set[str] = set()

    @classmethod
    def build(cls, layout: Layout) -> "LayoutIndex":
        elements: Dict[str, Element] = {}
        for group, element in layout.iter_elements():
            if element.uid in elements:
                raise PersistenceError(
                    code="LAYOUT_CORRUPT",
                    message="Persisted layout holds a duplicate element uid",
                    path=f"groups[{group.name}]",
                    detail={"fieldLayoutId": layout.id, "uid": element.uid},
                )
            elements[element.uid] = element
        return cls(elements)

    def claim(self, uid: str) -> Element | None:
        element = self._elements.get(uid)
        if element is not None:
            self._claimed.add(uid)
        return element

    def unclaimed(self) -> Iterator[Element]:
        for uid, element in self._elements.items():
            if uid not in self._claimed:
                yield element
