"""Layout element variants and the references they resolve against.

Three element kinds can be placed in a layout group:

- ``FieldPlacement`` points at a reusable field by id.
- ``AttributePlacement`` points at a built-in attribute of the layout owner
  (``title``, ``slug``, ...) and carries read-only descriptors copied from the
  owner's attribute catalog.
- ``UiElement`` is a decorative unit (heading, divider, ...) with a width only.

Elements are immutable. Patching returns a new instance that keeps the uid,
the kind and the field/attribute reference of the original.
"""

from __future__ import annotations

import dataclasses
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Dict, Union

from .errors import InvalidWidth, MalformedSpecification


KIND_FIELD = "field"
KIND_ATTRIBUTE = "attribute"
KIND_UI = "ui"

TYPE_FIELD = "FieldPlacement"
TYPE_ATTRIBUTE = "AttributePlacement"
UI_ELEMENT_TYPES = ("Heading", "Tip", "Markdown", "Template", "HorizontalRule", "LineBreak")

TEXT_PROPERTIES = ("label", "instructions", "tip", "warning")
PLACEMENT_PROPERTIES = ("required",) + TEXT_PROPERTIES + ("width",)
READ_ONLY_DESCRIPTORS = ("mandatory", "requirable", "translatable")

DEFAULT_WIDTH = 100


def new_uid() -> str:
    return str(uuid.uuid4())


def check_width(value: Any, path: str | None = "width") -> int:
    # bool is an int subclass; True is not a width
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedSpecification(message="width must be an integer", path=path, detail={"width": value})
    if value < 1 or value > 100:
        raise InvalidWidth(path=path, detail={"width": value})
    return value


@dataclass(frozen=True)
class FieldDescriptor:
    id: int
    name: str
    handle: str
    type: str


@dataclass(frozen=True)
class AttributeDescriptor:
    name: str
    label: str | None = None
    mandatory: bool = False
    requirable: bool = True
    translatable: bool = False


@dataclass(frozen=True)
class FieldPlacement:
    field_id: int
    uid: str = field(default_factory=new_uid)
    required: bool = False
    label: str | None = None
    instructions: str | None = None
    tip: str | None = None
    warning: str | None = None
    width: int = DEFAULT_WIDTH

    kind: ClassVar[str] = KIND_FIELD
    editable: ClassVar[tuple] = PLACEMENT_PROPERTIES

    def __post_init__(self) -> None:
        check_width(self.width)

    @property
    def type_tag(self) -> str:
        return TYPE_FIELD

    def to_dict(self) -> dict:
        return {
            "uid": self.uid,
            "kind": self.kind,
            "fieldId": self.field_id,
            "required": self.required,
            "label": self.label,
            "instructions": self.instructions,
            "tip": self.tip,
            "warning": self.warning,
            "width": self.width,
        }

    @classmethod
    def from_dict(cls, doc: dict) -> "FieldPlacement":
        return cls(
            field_id=doc["fieldId"],
            uid=doc["uid"],
            required=bool(doc.get("required", False)),
            label=doc.get("label"),
            instructions=doc.get("instructions"),
            tip=doc.get("tip"),
            warning=doc.get("warning"),
            width=doc.get("width", DEFAULT_WIDTH),
        )


@dataclass(frozen=True)
class AttributePlacement:
    attribute: str
    uid: str = field(default_factory=new_uid)
    required: bool = False
    label: str | None = None
    instructions: str | None = None
    tip: str | None = None
    warning: str | None = None
    width: int = DEFAULT_WIDTH
    mandatory: bool = False
    requirable: bool = True
    translatable: bool = False

    kind: ClassVar[str] = KIND_ATTRIBUTE
    editable: ClassVar[tuple] = PLACEMENT_PROPERTIES

    def __post_init__(self) -> None:
        check_width(self.width)

    @property
    def type_tag(self) -> str:
        return TYPE_ATTRIBUTE

    def to_dict(self) -> dict:
        return {
            "uid": self.uid,
            "kind": self.kind,
            "attribute": self.attribute,
            "required": self.required,
            "label": self.label,
            "instructions": self.instructions,
            "tip": self.tip,
            "warning": self.warning,
            "width": self.width,
            "mandatory": self.mandatory,
            "requirable": self.requirable,
            "translatable": self.translatable,
        }

    @classmethod
    def from_dict(cls, doc: dict) -> "AttributePlacement":
        return cls(
            attribute=doc["attribute"],
            uid=doc["uid"],
            required=bool(doc.get("required", False)),
            label=doc.get("label"),
            instructions=doc.get("instructions"),
            tip=doc.get("tip"),
            warning=doc.get("warning"),
            width=doc.get("width", DEFAULT_WIDTH),
            mandatory=bool(doc.get("mandatory", False)),
            requirable=bool(doc.get("requirable", True)),
            translatable=bool(doc.get("translatable", False)),
        )


@dataclass(frozen=True)
class UiElement:
    ui_type: str
    uid: str = field(default_factory=new_uid)
    width: int = DEFAULT_WIDTH

    kind: ClassVar[str] = KIND_UI
    editable: ClassVar[tuple] = ("width",)

    def __post_init__(self) -> None:
        check_width(self.width)

    @property
    def type_tag(self) -> str:
        return self.ui_type

    def to_dict(self) -> dict:
        return {"uid": self.uid, "kind": self.kind, "uiType": self.ui_type, "width": self.width}

    @classmethod
    def from_dict(cls, doc: dict) -> "UiElement":
        return cls(ui_type=doc["uiType"], uid=doc["uid"], width=doc.get("width", DEFAULT_WIDTH))


Element = Union[FieldPlacement, AttributePlacement, UiElement]

_FROM_DICT: Dict[str, Callable[[dict], Element]] = {
    KIND_FIELD: FieldPlacement.from_dict,
    KIND_ATTRIBUTE: AttributePlacement.from_dict,
    KIND_UI: UiElement.from_dict,
}


def element_from_dict(doc: dict) -> Element:
    kind = doc.get("kind") if isinstance(doc, dict) else None
    loader = _FROM_DICT.get(kind)
    if loader is None:
        raise ValueError(f"Unknown element kind: {kind!r}")
    return loader(doc)


def apply_properties(element: Element, props: Dict[str, Any]) -> Element:
    """Return ``element`` with the given placement properties overwritten.

    Properties the element kind does not carry are ignored, so a ``required``
    flag sent for a divider is dropped rather than rejected.
    """
    changes = {key: value for key, value in props.items() if key in element.editable}
    if not changes:
        return element
    return dataclasses.replace(element, **changes)


def make_field_placement(descriptor: FieldDescriptor, props: Dict[str, Any]) -> FieldPlacement:
    return apply_properties(FieldPlacement(field_id=descriptor.id), props)


def make_attribute_placement(descriptor: AttributeDescriptor, props: Dict[str, Any]) -> AttributePlacement:
    placement = AttributePlacement(
        attribute=descriptor.name,
        mandatory=descriptor.mandatory,
        requirable=descriptor.requirable,
        translatable=descriptor.translatable,
    )
    return apply_properties(placement, props)


def make_ui_element(ui_type: str, props: Dict[str, Any]) -> UiElement | None:
    if ui_type not in UI_ELEMENT_TYPES:
        return None
    return apply_properties(UiElement(ui_type=ui_type), props)

