"""Remotely callable field layout tools: definitions and dispatch."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

from fieldlayout.elements import TYPE_ATTRIBUTE, TYPE_FIELD, UI_ELEMENT_TYPES
from fieldlayout.errors import LayoutError, MalformedSpecification
from fieldlayout.layout import Layout
from layout_reconcile import LayoutReconciler
from layout_serialize import serialize_field, serialize_layout, serialize_layout_fields


logger = logging.getLogger("fieldlayout.tools")

_ELEMENT_SCHEMA = {
    "type": "object",
    "properties": {
        "uid": {"type": "string", "description": "uid of an existing element to keep"},
        "type": {"type": "string", "enum": [TYPE_FIELD, TYPE_ATTRIBUTE, *UI_ELEMENT_TYPES]},
        "fieldId": {"type": "integer", "description": "Field to place (new FieldPlacement elements)"},
        "attribute": {"type": "string", "description": "Built-in attribute (new AttributePlacement elements)"},
        "required": {"type": "boolean"},
        "label": {"type": ["string", "null"]},
        "instructions": {"type": ["string", "null"]},
        "tip": {"type": ["string", "null"]},
        "warning": {"type": ["string", "null"]},
        "width": {"type": "integer", "minimum": 1, "maximum": 100, "default": 100},
    },
}

TOOL_DEFINITIONS: List[dict] = [
    {
        "name": "get_field_layout",
        "description": (
            "Get a field layout by its ID: its groups (tabs) in order and every element in each group, "
            "custom fields, native attributes like title, and UI elements, with their uids and properties."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {"fieldLayoutId": {"type": "integer", "description": "The ID of the field layout"}},
            "required": ["fieldLayoutId"],
        },
    },
    {
        "name": "update_field_layout",
        "description": (
            "Replace the groups of a field layout. To keep existing elements, including native attributes "
            "and UI elements, call get_field_layout first, edit the result and pass every element back with "
            "its uid. Elements that are not passed back are removed. Properties left out of an element keep "
            "their current values."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "fieldLayoutId": {"type": "integer", "description": "The ID of the field layout to update"},
                "groups": {
                    "type": "array",
                    "description": "Groups with their elements, in display order",
                    "items": {
                        "type": "object",
                        "properties": {
                            "name": {"type": "string", "description": "The display name for the group"},
                            "elements": {"type": "array", "items": _ELEMENT_SCHEMA},
                        },
                        "required": ["name", "elements"],
                    },
                },
            },
            "required": ["fieldLayoutId", "groups"],
        },
    },
    {
        "name": "get_fields",
        "description": (
            "List fields. With a fieldLayoutId, only the fields placed in that layout are returned, in layout "
            "order, with the group they sit in."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {"fieldLayoutId": {"type": ["integer", "null"]}},
        },
    },
]


def _layout_id(arguments: dict, required: bool = True) -> int | None:
    value = arguments.get("fieldLayoutId")
    if value is None and not required:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise MalformedSpecification(message="fieldLayoutId must be an integer", path="fieldLayoutId")


def _with_tx(tx_mgr, fn):
    tx = tx_mgr.begin()
    try:
        result = fn(tx)
        tx.commit()
        return result
    except Exception:
        tx.rollback()
        raise


class LayoutTools:
    def __init__(self, store, tx_mgr) -> None:
        self._store = store
        self._tx_mgr = tx_mgr
        self._reconciler = LayoutReconciler(store)
        self._handlers: Dict[str, Callable[[dict], dict]] = {
            "get_field_layout": self.get_field_layout,
            "update_field_layout": self.update_field_layout,
            "get_fields": self.get_fields,
        }

    def definitions(self) -> List[dict]:
        return [dict(tool) for tool in TOOL_DEFINITIONS]

    def call(self, name: str, arguments: Any) -> dict:
        handler = self._handlers.get(name)
        if handler is None:
            raise LayoutError(code="TOOL_UNKNOWN", message=f"Unknown tool: {name}", path="name")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise MalformedSpecification(message="arguments must be an object", path="arguments")
        logger.info("tool_call name=%s", name)
        return handler(arguments)

    def _view(self, layout: Layout) -> dict:
        fields = {f.id: f for f in self._store.list_fields()}
        return serialize_layout(layout, fields.get)

    def get_field_layout(self, arguments: dict) -> dict:
        layout = self._store.load_layout(_layout_id(arguments))
        return {
            "_notes": "Field layout currently contains the following elements.",
            "fieldLayout": self._view(layout),
        }

    def update_field_layout(self, arguments: dict) -> dict:
        layout_id = _layout_id(arguments)
        groups = arguments.get("groups")
        if groups is None:
            groups = arguments.get("tabs")

        def _run(tx) -> dict:
            result = self._reconciler.reconcile(layout_id, groups)
            return {
                "_notes": [
                    "Field layout updated successfully",
                    "All field layout elements (custom fields, native attributes, and UI elements) have been "
                    "organized into the specified groups",
                    "Review the changes in the control panel for the model that uses this layout",
                ],
                "fieldLayout": self._view(result.layout),
                "fromHash": result.from_hash,
                "toHash": result.to_hash,
                "warnings": result.warnings,
            }

        return _with_tx(self._tx_mgr, _run)

    def get_fields(self, arguments: dict) -> dict:
        layout_id = _layout_id(arguments, required=False)
        fields = self._store.list_fields()
        if layout_id is None:
            return {"fields": [serialize_field(f) for f in fields]}
        layout = self._store.load_layout(layout_id)
        lookup = {f.id: f for f in fields}.get
        return {"fieldLayoutId": layout.id, "fields": serialize_layout_fields(layout, lookup)}
