"""Reconcile a submitted layout description against the persisted layout.

Groups are replaced wholesale on every call: the submitted list, in submitted
order, becomes the new list. Elements are matched by uid. A matched element
keeps its identity and every property the submission leaves out; an unmatched
one is created from its type and reference. Persisted elements the submission
does not mention are dropped.

The content store passed to ``LayoutReconciler`` must provide::

    load_layout(layout_id) -> Layout                       # LayoutNotFound
    resolve_field(field_id) -> FieldDescriptor             # UnresolvedFieldReference
    resolve_attribute(layout_type, name) -> AttributeDescriptor  # UnknownAttribute
    persist_layout(layout) -> Layout                       # PersistenceError
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from fieldlayout.elements import (
    TYPE_ATTRIBUTE,
    TYPE_FIELD,
    UI_ELEMENT_TYPES,
    Element,
    apply_properties,
    make_attribute_placement,
    make_field_placement,
    make_ui_element,
)
from fieldlayout.errors import UnknownAttribute, UnresolvedFieldReference, field_not_found
from fieldlayout.layout import Group, Layout
from fieldlayout.layout_hash import layout_hash
from layout_index import LayoutIndex
from layout_spec import ElementSpec, parse_groups


logger = logging.getLogger("fieldlayout.reconcile")

Issue = Dict[str, Any]


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


@dataclass
class ReconcileResult:
    layout: Layout
    from_hash: str
    to_hash: str
    preserved: List[str] = field(default_factory=list)
    created: List[str] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)
    warnings: List[Issue] = field(default_factory=list)


class LayoutReconciler:
    def __init__(self, store) -> None:
        self._store = store
        self._builders: Dict[str, Callable[[Layout, ElementSpec, List[Issue]], Element | None]] = {
            TYPE_FIELD: self._build_field,
            TYPE_ATTRIBUTE: self._build_attribute,
        }
        for ui_type in UI_ELEMENT_TYPES:
            self._builders[ui_type] = self._build_ui

    def reconcile(self, layout_id: Any, groups: Any) -> ReconcileResult:
        specs = parse_groups(groups)
        current = self._store.load_layout(layout_id)
        index = LayoutIndex.build(current)
        result_groups: List[Group] = []
        preserved: List[str] = []
        created: List[str] = []
        warnings: List[Issue] = []

        for group_spec in specs:
            elements: List[Element] = []
            for spec in group_spec.elements:
                existing = index.claim(spec.uid) if spec.uid else None
                if existing is not None:
                    element = apply_properties(existing, spec.props)
                    preserved.append(element.uid)
                else:
                    element = self._create(current, spec, warnings)
                    if element is None:
                        continue
                    created.append(element.uid)
                elements.append(element)
            result_groups.append(Group(name=group_spec.name, elements=tuple(elements)))

        dropped = [element.uid for element in index.unclaimed()]
        candidate = current.with_groups(tuple(result_groups))
        persisted = self._store.persist_layout(candidate)
        result = ReconcileResult(
            layout=persisted,
            from_hash=layout_hash(current.to_dict()),
            to_hash=layout_hash(persisted.to_dict()),
            preserved=preserved,
            created=created,
            dropped=dropped,
            warnings=warnings,
        )
        logger.info(
            "layout_reconciled layout_id=%s groups=%s preserved=%s created=%s skipped=%s dropped=%s",
            current.id,
            len(result_groups),
            len(preserved),
            len(created),
            len(warnings),
            len(dropped),
        )
        return result

    def _create(self, layout: Layout, spec: ElementSpec, warnings: List[Issue]) -> Element | None:
        builder = self._builders.get(spec.type) if spec.type else None
        if builder is None:
            self._skip(warnings, spec, "Unrecognized element type", {"type": spec.type, "uid": spec.uid})
            return None
        return builder(layout, spec, warnings)

    def _build_field(self, layout: Layout, spec: ElementSpec, warnings: List[Issue]) -> Element | None:
        if spec.field_id is None:
            self._skip(warnings, spec, "FieldPlacement without fieldId", {"uid": spec.uid})
            return None
        try:
            descriptor = self._store.resolve_field(spec.field_id)
        except UnresolvedFieldReference as exc:
            raise field_not_found(spec.field_id, f"{spec.path}.fieldId") from exc
        return make_field_placement(descriptor, spec.props)

    def _build_attribute(self, layout: Layout, spec: ElementSpec, warnings: List[Issue]) -> Element | None:
        if spec.attribute is None:
            self._skip(warnings, spec, "AttributePlacement without attribute", {"uid": spec.uid})
            return None
        try:
            descriptor = self._store.resolve_attribute(layout.type, spec.attribute)
        except UnknownAttribute as exc:
            self._skip(warnings, spec, exc.message, {"uid": spec.uid, **(exc.detail or {})})
            return None
        return make_attribute_placement(descriptor, spec.props)

    def _build_ui(self, layout: Layout, spec: ElementSpec, warnings: List[Issue]) -> Element | None:
        return make_ui_element(spec.type, spec.props)

    def _skip(self, warnings: List[Issue], spec: ElementSpec, message: str, detail: dict) -> None:
        logger.info("layout_element_skipped path=%s reason=%s", spec.path, message)
        warnings.append(_issue("ELEMENT_SKIPPED", message, spec.path, detail))
