"""Field layout model: element variants, layouts, errors and revision hashing."""

from .elements import (
    AttributeDescriptor,
    AttributePlacement,
    Element,
    FieldDescriptor,
    FieldPlacement,
    UiElement,
)
from .errors import (
    InvalidWidth,
    LayoutError,
    LayoutNotFound,
    MalformedSpecification,
    PersistenceError,
    UnknownAttribute,
    UnresolvedFieldReference,
)
from .layout import Group, Layout
from .layout_hash import CanonicalJsonTypeError, canonical_dumps, layout_hash

__all__ = [
    "AttributeDescriptor",
    "AttributePlacement",
    "CanonicalJsonTypeError",
    "Element",
    "FieldDescriptor",
    "FieldPlacement",
    "Group",
    "InvalidWidth",
    "Layout",
    "LayoutError",
    "LayoutNotFound",
    "MalformedSpecification",
    "PersistenceError",
    "UiElement",
    "UnknownAttribute",
    "UnresolvedFieldReference",
    "canonical_dumps",
    "layout_hash",
]
