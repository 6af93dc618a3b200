"""Project layouts and fields into tool response views."""

from __future__ import annotations

from typing import Any, Callable, Dict, List

from fieldlayout.elements import (
    AttributePlacement,
    Element,
    FieldDescriptor,
    FieldPlacement,
    KIND_ATTRIBUTE,
    KIND_FIELD,
    TEXT_PROPERTIES,
)
from fieldlayout.layout import Layout


FieldLookup = Callable[[int], FieldDescriptor | None]


def serialize_field(descriptor: FieldDescriptor) -> dict:
    return {
        "id": descriptor.id,
        "name": descriptor.name,
        "handle": descriptor.handle,
        "type": descriptor.type,
    }


def _placement_view(element: FieldPlacement | AttributePlacement) -> dict:
    view: Dict[str, Any] = {"required": element.required}
    for key in TEXT_PROPERTIES:
        view[key] = getattr(element, key)
    return view


def serialize_element(element: Element, lookup: FieldLookup) -> dict:
    view: Dict[str, Any] = {
        "uid": element.uid,
        "type": element.type_tag,
        "kind": element.kind,
        "width": element.width,
    }
    if element.kind == KIND_FIELD:
        descriptor = lookup(element.field_id)
        view["fieldId"] = element.field_id
        view["fieldName"] = descriptor.name if descriptor else None
        view["fieldHandle"] = descriptor.handle if descriptor else None
        view["fieldType"] = descriptor.type if descriptor else None
        view.update(_placement_view(element))
    elif element.kind == KIND_ATTRIBUTE:
        view["attribute"] = element.attribute
        view.update(_placement_view(element))
        view["mandatory"] = element.mandatory
        view["requirable"] = element.requirable
        view["translatable"] = element.translatable
    return view


def serialize_layout(layout: Layout, lookup: FieldLookup) -> dict:
    """Return the ``{id, type, groups}`` view of a layout.

    ``lookup`` maps a field id to its descriptor, or ``None`` when the field
    no longer exists; the placement is still listed with empty field metadata.
    """
    return {
        "id": layout.id,
        "type": layout.type,
        "groups": [
            {
                "name": group.name,
                "elements": [serialize_element(element, lookup) for element in group.elements],
            }
            for group in layout.groups
        ],
    }


def serialize_layout_fields(layout: Layout, lookup: FieldLookup) -> List[dict]:
    items: List[dict] = []
    for group, element in layout.iter_elements():
        if element.kind != KIND_FIELD:
            continue
        descriptor = lookup(element.field_id)
        if descriptor is None:
            continue
        item = serialize_field(descriptor)
        item["required"] = element.required
        item["label"] = element.label
        item["group"] = group.name
        item["uid"] = element.uid
        items.append(item)
    return items
