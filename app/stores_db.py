"""DB-backed layout store and transactions."""

from __future__ import annotations

import copy
import json
import logging
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, List

import psycopg2

from app.db import clear_active_conn, execute, fetch_all, fetch_one, get_conn, get_pool, init_pool, set_active_conn
from fieldlayout.elements import AttributeDescriptor, FieldDescriptor
from fieldlayout.errors import PersistenceError, field_not_found, layout_not_found
from fieldlayout.layout import Layout
from fieldlayout.layout_hash import layout_hash
from layout_store import DEFAULT_ATTRIBUTE_CATALOGS, check_unique_uids, lookup_attribute


logger = logging.getLogger("fieldlayout.store")

SCHEMA_SQL = """
create table if not exists fields (
    id integer primary key,
    name text not null,
    handle text not null,
    type text not null
);
create table if not exists field_layouts (
    id integer primary key,
    type text not null,
    layout jsonb not null,
    layout_hash text not null,
    updated_at timestamptz not null
);
create table if not exists field_layout_audit (
    audit_id uuid primary key,
    layout_id integer not null references field_layouts(id) on delete cascade,
    from_hash text,
    to_hash text not null,
    actor jsonb,
    reason text,
    created_at timestamptz not null
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _ensure_json(value):
    if isinstance(value, str):
        return json.loads(value)
    return value


def _to_iso(value):
    if hasattr(value, "strftime"):
        return value.strftime("%Y-%m-%dT%H:%M:%SZ")
    return value


class _TxContext:
    def __init__(self, conn, pool):
        self.conn = conn
        self.pool = pool
        self.depth = 1
        self.failed = False


_TX_CONTEXT: ContextVar[_TxContext | None] = ContextVar("fieldlayout_tx_context", default=None)


class DbTx:
    def __init__(self, ctx: _TxContext):
        self._ctx = ctx

    @property
    def conn(self):
        return self._ctx.conn

    def commit(self) -> None:
        ctx = self._ctx
        if ctx.depth > 1:
            ctx.depth -= 1
            return
        try:
            if ctx.failed:
                ctx.conn.rollback()
            else:
                ctx.conn.commit()
        finally:
            self._release()

    def rollback(self) -> None:
        ctx = self._ctx
        ctx.failed = True
        if ctx.depth > 1:
            ctx.depth -= 1
            return
        try:
            ctx.conn.rollback()
        finally:
            self._release()

    def _release(self) -> None:
        self._ctx.pool.putconn(self._ctx.conn)
        _TX_CONTEXT.set(None)
        clear_active_conn()


class DbTxManager:
    def begin(self) -> DbTx:
        ctx = _TX_CONTEXT.get()
        if ctx is not None:
            ctx.depth += 1
            return DbTx(ctx)
        init_pool()
        pool = get_pool()
        ctx = _TxContext(pool.getconn(), pool)
        _TX_CONTEXT.set(ctx)
        set_active_conn(ctx.conn)
        return DbTx(ctx)


def _field_from_row(row: dict) -> FieldDescriptor:
    return FieldDescriptor(id=row["id"], name=row["name"], handle=row["handle"], type=row["type"])


class DbLayoutStore:
    def __init__(self, attribute_catalogs: Dict[str, Dict[str, AttributeDescriptor]] | None = None) -> None:
        self._catalogs = copy.deepcopy(attribute_catalogs if attribute_catalogs is not None else DEFAULT_ATTRIBUTE_CATALOGS)

    def ensure_schema(self) -> None:
        with get_conn() as conn:
            execute(conn, SCHEMA_SQL, query_name="schema.ensure")

    def find_field(self, field_id: int) -> FieldDescriptor | None:
        with get_conn() as conn:
            row = fetch_one(
                conn,
                "select id, name, handle, type from fields where id=%s",
                [field_id],
                query_name="fields.get",
            )
        return _field_from_row(row) if row else None

    def resolve_field(self, field_id: int) -> FieldDescriptor:
        descriptor = self.find_field(field_id)
        if descriptor is None:
            raise field_not_found(field_id)
        return descriptor

    def list_fields(self) -> List[FieldDescriptor]:
        with get_conn() as conn:
            rows = fetch_all(conn, "select id, name, handle, type from fields order by id", query_name="fields.list")
        return [_field_from_row(r) for r in rows]

    def resolve_attribute(self, layout_type: str, name: str) -> AttributeDescriptor:
        return lookup_attribute(self._catalogs, layout_type, name)

    def get_head(self, layout_id: int) -> str | None:
        with get_conn() as conn:
            row = fetch_one(
                conn,
                "select layout_hash from field_layouts where id=%s",
                [layout_id],
                query_name="field_layouts.head",
            )
        return row["layout_hash"] if row else None

    def load_layout(self, layout_id: int) -> Layout:
        with get_conn() as conn:
            row = fetch_one(
                conn,
                "select id, type, layout from field_layouts where id=%s",
                [layout_id],
                query_name="field_layouts.get",
            )
        if not row:
            raise layout_not_found(layout_id)
        doc = _ensure_json(row["layout"])
        doc["id"] = row["id"]
        doc["type"] = row["type"]
        return Layout.from_dict(doc)

    def persist_layout(self, layout: Layout, actor: dict | None = None, reason: str = "reconcile") -> Layout:
        check_unique_uids(layout)
        doc = layout.to_dict()
        new_hash = layout_hash(doc)
        try:
            with get_conn() as conn:
                row = fetch_one(
                    conn,
                    "select layout_hash from field_layouts where id=%s",
                    [layout.id],
                    query_name="field_layouts.head",
                )
                if not row:
                    raise layout_not_found(layout.id)
                execute(
                    conn,
                    """
                    update field_layouts set layout=%s, layout_hash=%s, updated_at=%s
                    where id=%s
                    """,
                    [json.dumps(doc), new_hash, _now(), layout.id],
                    query_name="field_layouts.update",
                )
                execute(
                    conn,
                    """
                    insert into field_layout_audit (audit_id, layout_id, from_hash, to_hash, actor, reason, created_at)
                    values (%s,%s,%s,%s,%s,%s,%s)
                    """,
                    [str(uuid.uuid4()), layout.id, row["layout_hash"], new_hash, json.dumps(actor) if actor else None, reason, _now()],
                    query_name="field_layout_audit.insert",
                )
        except psycopg2.Error as exc:
            logger.warning("layout_persist_failed layout_id=%s error=%s", layout.id, exc)
            raise PersistenceError(detail={"fieldLayoutId": layout.id, "error": str(exc)}) from exc
        logger.info("layout_persisted layout_id=%s from=%s to=%s", layout.id, row["layout_hash"], new_hash)
        return self.load_layout(layout.id)

    def list_history(self, layout_id: int) -> List[dict]:
        with get_conn() as conn:
            rows = fetch_all(
                conn,
                """
                select audit_id, layout_id, from_hash, to_hash, actor, reason, created_at
                from field_layout_audit
                where layout_id=%s
                order by created_at desc
                """,
                [layout_id],
                query_name="field_layout_audit.list",
            )
        return [
            {
                "audit_id": str(r["audit_id"]),
                "layout_id": r["layout_id"],
                "action": "update",
                "from_hash": r["from_hash"],
                "to_hash": r["to_hash"],
                "actor": _ensure_json(r["actor"]) if r["actor"] is not None else None,
                "reason": r["reason"],
                "at": _to_iso(r["created_at"]),
            }
            for r in rows
        ]
