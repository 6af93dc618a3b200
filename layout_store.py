"""In-memory content store: layouts, fields, attribute catalogs and revisions."""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Tuple

from fieldlayout.elements import AttributeDescriptor, FieldDescriptor
from fieldlayout.errors import PersistenceError, UnknownAttribute, field_not_found, layout_not_found
from fieldlayout.layout import Group, Layout
from fieldlayout.layout_hash import layout_hash


logger = logging.getLogger("fieldlayout.store")

_ACTIVE_JOURNAL: ContextVar[List[dict] | None] = ContextVar("fieldlayout_store_journal", default=None)


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _attrs(*items: AttributeDescriptor) -> Dict[str, AttributeDescriptor]:
    return {item.name: item for item in items}


DEFAULT_ATTRIBUTE_CATALOGS: Dict[str, Dict[str, AttributeDescriptor]] = {
    "entry": _attrs(
        AttributeDescriptor("title", "Title", mandatory=True, requirable=False, translatable=True),
        AttributeDescriptor("slug", "Slug", translatable=True),
        AttributeDescriptor("postDate", "Post Date"),
        AttributeDescriptor("expiryDate", "Expiry Date"),
        AttributeDescriptor("authors", "Authors"),
    ),
    "asset": _attrs(
        AttributeDescriptor("title", "Title", mandatory=True, requirable=False, translatable=True),
        AttributeDescriptor("alt", "Alternative Text", translatable=True),
        AttributeDescriptor("filename", "Filename", mandatory=True, requirable=False),
    ),
    "user": _attrs(
        AttributeDescriptor("username", "Username", mandatory=True, requirable=False),
        AttributeDescriptor("fullName", "Full Name"),
        AttributeDescriptor("email", "Email", mandatory=True, requirable=False),
        AttributeDescriptor("photo", "Photo"),
    ),
    "category": _attrs(
        AttributeDescriptor("title", "Title", mandatory=True, requirable=False, translatable=True),
        AttributeDescriptor("slug", "Slug", translatable=True),
    ),
    "tag": _attrs(
        AttributeDescriptor("title", "Title", mandatory=True, requirable=False, translatable=True),
    ),
}


def lookup_attribute(
    catalogs: Dict[str, Dict[str, AttributeDescriptor]], layout_type: str, name: str
) -> AttributeDescriptor:
    descriptor = catalogs.get(layout_type, {}).get(name)
    if descriptor is None:
        raise UnknownAttribute(
            message=f"Attribute '{name}' is not available on {layout_type or 'this'} layouts",
            detail={"attribute": name, "layoutType": layout_type},
        )
    return descriptor


def check_unique_uids(layout: Layout) -> None:
    seen: set[str] = set()
    for uid in layout.uids():
        if uid in seen:
            raise PersistenceError(
                code="LAYOUT_CORRUPT",
                message="Layout holds a duplicate element uid",
                path="groups",
                detail={"fieldLayoutId": layout.id, "uid": uid},
            )
        seen.add(uid)


def open_journal() -> Tuple[List[dict], Token]:
    """Start recording layout writes made in the current context."""
    journal: List[dict] = []
    return journal, _ACTIVE_JOURNAL.set(journal)


def close_journal(token: Token) -> None:
    _ACTIVE_JOURNAL.reset(token)


class LayoutStore:
    def __init__(self, attribute_catalogs: Dict[str, Dict[str, AttributeDescriptor]] | None = None) -> None:
        self._catalogs = copy.deepcopy(attribute_catalogs if attribute_catalogs is not None else DEFAULT_ATTRIBUTE_CATALOGS)
        self._fields: Dict[int, FieldDescriptor] = {}
        self._snapshots: Dict[int, Dict[str, dict]] = {}
        self._head: Dict[int, str] = {}
        self._audit: Dict[int, List[dict]] = {}
        self._head_audit: Dict[int, str] = {}
        self._lock = threading.RLock()
        self._next_field_id = 1
        self._next_layout_id = 1

    # fields

    def add_field(self, name: str, handle: str, field_type: str, field_id: int | None = None) -> FieldDescriptor:
        if field_id is None:
            field_id = self._next_field_id
        self._next_field_id = max(self._next_field_id, field_id + 1)
        descriptor = FieldDescriptor(id=field_id, name=name, handle=handle, type=field_type)
        self._fields[field_id] = descriptor
        return descriptor

    def remove_field(self, field_id: int) -> None:
        self._fields.pop(field_id, None)

    def find_field(self, field_id: int) -> FieldDescriptor | None:
        return self._fields.get(field_id)

    def resolve_field(self, field_id: int) -> FieldDescriptor:
        descriptor = self._fields.get(field_id)
        if descriptor is None:
            raise field_not_found(field_id)
        return descriptor

    def list_fields(self) -> List[FieldDescriptor]:
        return [self._fields[fid] for fid in sorted(self._fields)]

    # attributes

    def resolve_attribute(self, layout_type: str, name: str) -> AttributeDescriptor:
        return lookup_attribute(self._catalogs, layout_type, name)

    def attributes_for(self, layout_type: str) -> List[AttributeDescriptor]:
        return list(self._catalogs.get(layout_type, {}).values())

    # layouts

    def create_layout(
        self,
        layout_type: str,
        groups: Iterable[Group] = (),
        layout_id: int | None = None,
        actor: dict | None = None,
    ) -> Layout:
        if layout_id is None:
            layout_id = self._next_layout_id
        self._next_layout_id = max(self._next_layout_id, layout_id + 1)
        layout = Layout(id=layout_id, type=layout_type, groups=tuple(groups))
        check_unique_uids(layout)
        self._write(layout, action="create", actor=actor, reason="create")
        return self.load_layout(layout_id)

    def get_head(self, layout_id: int) -> str | None:
        return self._head.get(layout_id)

    def load_layout(self, layout_id: int) -> Layout:
        head = self._head.get(layout_id)
        if head is None:
            raise layout_not_found(layout_id)
        return Layout.from_dict(copy.deepcopy(self._snapshots[layout_id][head]["layout"]))

    def persist_layout(self, layout: Layout, actor: dict | None = None, reason: str = "reconcile") -> Layout:
        if layout.id not in self._head:
            raise layout_not_found(layout.id)
        check_unique_uids(layout)
        self._write(layout, action="update", actor=actor, reason=reason)
        return self.load_layout(layout.id)

    def get_snapshot(self, layout_id: int, layout_hash_value: str) -> Layout:
        record = self._snapshots.get(layout_id, {}).get(layout_hash_value)
        if record is None:
            raise KeyError("Snapshot not found")
        return Layout.from_dict(copy.deepcopy(record["layout"]))

    def list_history(self, layout_id: int) -> List[dict]:
        return [copy.deepcopy(a) for a in self._audit.get(layout_id, [])]

    def revert(self, journal: List[dict]) -> None:
        """Undo the writes recorded in ``journal``, newest first.

        A layout whose head was moved on by a later write from another
        transaction keeps that head; only this journal's audit rows go.
        Snapshots are content-addressed and stay.
        """
        with self._lock:
            for entry in reversed(journal):
                layout_id = entry["layout_id"]
                self._audit[layout_id] = [
                    a for a in self._audit.get(layout_id, []) if a["audit_id"] != entry["audit_id"]
                ]
                if self._head_audit.get(layout_id) != entry["audit_id"]:
                    logger.warning("layout_revert_skipped layout_id=%s reason=head_moved", layout_id)
                    continue
                if entry["from_hash"] is None:
                    self._head.pop(layout_id, None)
                    self._head_audit.pop(layout_id, None)
                else:
                    self._head[layout_id] = entry["from_hash"]
                    self._head_audit[layout_id] = entry["from_audit"]
                logger.info("layout_reverted layout_id=%s to=%s", layout_id, entry["from_hash"])

    def _write(self, layout: Layout, action: str, actor: dict | None, reason: str) -> str:
        doc = layout.to_dict()
        new_hash = layout_hash(doc)
        with self._lock:
            from_hash = self._head.get(layout.id)
            self._snapshots.setdefault(layout.id, {})[new_hash] = {
                "layout_id": layout.id,
                "layout_hash": new_hash,
                "layout": copy.deepcopy(doc),
                "created_at": _now(),
                "created_by": actor,
                "reason": reason,
            }
            audit = {
                "audit_id": str(uuid.uuid4()),
                "layout_id": layout.id,
                "action": action,
                "from_hash": from_hash,
                "to_hash": new_hash,
                "actor": actor,
                "reason": reason,
                "at": _now(),
            }
            journal = _ACTIVE_JOURNAL.get()
            if journal is not None:
                journal.append(
                    {
                        "layout_id": layout.id,
                        "from_hash": from_hash,
                        "from_audit": self._head_audit.get(layout.id),
                        "audit_id": audit["audit_id"],
                    }
                )
            self._head[layout.id] = new_hash
            self._head_audit[layout.id] = audit["audit_id"]
            self._audit.setdefault(layout.id, []).insert(0, audit)
        logger.info("layout_persisted layout_id=%s action=%s from=%s to=%s", layout.id, action, from_hash, new_hash)
        return new_hash
