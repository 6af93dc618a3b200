import json
import os
import sys
import unittest
import uuid

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from fieldlayout.elements import FieldPlacement
from fieldlayout.errors import LayoutNotFound, UnresolvedFieldReference
from fieldlayout.layout import Group, Layout
from fieldlayout.layout_hash import layout_hash


@unittest.skipUnless(
    os.getenv("DATABASE_URL") and os.getenv("LAYOUT_STORE", "").strip().lower() == "db",
    "requires DATABASE_URL and LAYOUT_STORE=db",
)
class TestDbLayoutStore(unittest.TestCase):
    def setUp(self) -> None:
        from app.db import execute, get_conn
        from app.stores_db import DbLayoutStore, DbTxManager

        self.store = DbLayoutStore()
        self.store.ensure_schema()
        self.tx_mgr = DbTxManager()
        self.layout_id = int(uuid.uuid4().int % 1_000_000_000)
        self.field_id = self.layout_id
        layout = Layout(self.layout_id, "entry", (Group("Content", (FieldPlacement(self.field_id, uid="A"),)),))
        doc = layout.to_dict()
        with get_conn() as conn:
            execute(
                conn,
                "insert into fields (id, name, handle, type) values (%s,%s,%s,%s)",
                [self.field_id, "Body", f"body{self.field_id}", "PlainText"],
            )
            execute(
                conn,
                "insert into field_layouts (id, type, layout, layout_hash, updated_at) values (%s,%s,%s,%s,now())",
                [self.layout_id, "entry", json.dumps(doc), layout_hash(doc)],
            )
        self.layout = layout

    def tearDown(self) -> None:
        from app.db import execute, get_conn

        with get_conn() as conn:
            execute(conn, "delete from field_layouts where id=%s", [self.layout_id])
            execute(conn, "delete from fields where id=%s", [self.field_id])

    def test_load_and_resolve(self) -> None:
        self.assertEqual(self.store.load_layout(self.layout_id), self.layout)
        self.assertEqual(self.store.resolve_field(self.field_id).name, "Body")
        with self.assertRaises(UnresolvedFieldReference):
            self.store.resolve_field(-1)
        with self.assertRaises(LayoutNotFound):
            self.store.load_layout(-1)

    def test_persist_and_history(self) -> None:
        updated = self.layout.with_groups((Group("Main", self.layout.groups[0].elements),))
        self.store.persist_layout(updated)
        self.assertEqual(self.store.load_layout(self.layout_id), updated)
        self.assertEqual(self.store.get_head(self.layout_id), layout_hash(updated.to_dict()))
        history = self.store.list_history(self.layout_id)
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0]["from_hash"], layout_hash(self.layout.to_dict()))

    def test_rollback_discards_write(self) -> None:
        tx = self.tx_mgr.begin()
        self.store.persist_layout(self.layout.with_groups(()))
        tx.rollback()
        self.assertEqual(self.store.load_layout(self.layout_id), self.layout)
        self.assertEqual(self.store.list_history(self.layout_id), [])


if __name__ == "__main__":
    unittest.main()
