"""Error taxonomy for layout loading, reconciliation and persistence."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class LayoutError(Exception):
    code: str
    message: str
    path: str | None = None
    detail: Dict[str, Any] | None = field(default=None)

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base

    def as_issue(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "path": self.path, "detail": self.detail}


@dataclass
class LayoutNotFound(LayoutError):
    code: str = "LAYOUT_NOT_FOUND"
    message: str = "Field layout not found"


@dataclass
class UnresolvedFieldReference(LayoutError):
    code: str = "FIELD_NOT_FOUND"
    message: str = "Field not found"


@dataclass
class UnknownAttribute(LayoutError):
    code: str = "ATTRIBUTE_UNKNOWN"
    message: str = "Unknown attribute"


@dataclass
class InvalidWidth(LayoutError):
    code: str = "WIDTH_INVALID"
    message: str = "width must be an integer between 1 and 100"


@dataclass
class MalformedSpecification(LayoutError):
    code: str = "SPEC_MALFORMED"
    message: str = "Malformed layout specification"


@dataclass
class PersistenceError(LayoutError):
    code: str = "PERSIST_FAILED"
    message: str = "Field layout could not be saved"


def layout_not_found(layout_id: Any) -> LayoutNotFound:
    return LayoutNotFound(
        message=f"Field layout with ID {layout_id} not found",
        path="fieldLayoutId",
        detail={"fieldLayoutId": layout_id},
    )


def field_not_found(field_id: Any, path: str | None = None) -> UnresolvedFieldReference:
    return UnresolvedFieldReference(
        message=f"Field with ID {field_id} not found",
        path=path,
        detail={"fieldId": field_id},
    )
