import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from app.stores import InMemoryTxManager
from fieldlayout.elements import FieldPlacement, UiElement
from fieldlayout.errors import LayoutNotFound, PersistenceError, UnknownAttribute, UnresolvedFieldReference
from fieldlayout.layout import Group, Layout
from fieldlayout.layout_hash import layout_hash
from layout_store import LayoutStore


class TestLayoutStore(unittest.TestCase):
    def setUp(self) -> None:
        self.store = LayoutStore()
        self.store.add_field("Body", "body", "PlainText", field_id=7)
        self.layout = self.store.create_layout(
            "entry", [Group("Content", (FieldPlacement(7, uid="A"),))], actor={"id": "u1"}
        )

    def test_fields(self) -> None:
        added = self.store.add_field("Summary", "summary", "PlainText")
        self.assertEqual(added.id, 8)
        self.assertEqual([f.id for f in self.store.list_fields()], [7, 8])
        self.assertEqual(self.store.resolve_field(7).handle, "body")
        self.store.remove_field(8)
        self.assertIsNone(self.store.find_field(8))
        with self.assertRaises(UnresolvedFieldReference):
            self.store.resolve_field(8)

    def test_attributes(self) -> None:
        self.assertTrue(self.store.resolve_attribute("entry", "title").mandatory)
        self.assertIn("photo", [a.name for a in self.store.attributes_for("user")])
        with self.assertRaises(UnknownAttribute):
            self.store.resolve_attribute("entry", "photo")
        with self.assertRaises(UnknownAttribute):
            self.store.resolve_attribute("widget", "title")

    def test_load_and_head(self) -> None:
        self.assertEqual(self.layout.id, 1)
        self.assertEqual(self.store.load_layout(1), self.layout)
        self.assertEqual(self.store.get_head(1), layout_hash(self.layout.to_dict()))
        with self.assertRaises(LayoutNotFound) as ctx:
            self.store.load_layout(2)
        self.assertEqual(ctx.exception.detail, {"fieldLayoutId": 2})

    def test_persist_records_history(self) -> None:
        before = self.store.get_head(1)
        updated = self.layout.with_groups((Group("Content", (UiElement("Tip", uid="B"),)),))
        self.store.persist_layout(updated, actor={"id": "u2"})
        history = self.store.list_history(1)
        self.assertEqual([h["action"] for h in history], ["update", "create"])
        self.assertEqual(history[0]["from_hash"], before)
        self.assertEqual(history[0]["to_hash"], self.store.get_head(1))
        self.assertEqual(history[0]["actor"], {"id": "u2"})
        self.assertEqual(self.store.get_snapshot(1, before), self.layout)
        with self.assertRaises(KeyError):
            self.store.get_snapshot(1, "sha256:missing")

    def test_persist_unknown_layout(self) -> None:
        with self.assertRaises(LayoutNotFound):
            self.store.persist_layout(Layout(99, "entry"))

    def test_persist_rejects_duplicate_uids(self) -> None:
        broken = self.layout.with_groups(
            (Group("Content", (FieldPlacement(7, uid="A"),)), Group("Copy", (FieldPlacement(7, uid="A"),)))
        )
        with self.assertRaises(PersistenceError) as ctx:
            self.store.persist_layout(broken)
        self.assertEqual(ctx.exception.code, "LAYOUT_CORRUPT")
        self.assertEqual(self.store.load_layout(1), self.layout)

    def test_rollback_reverts_only_its_own_writes(self) -> None:
        other = self.store.create_layout("entry", [Group("Side", (UiElement("Tip", uid="C"),))], layout_id=2)
        head_1 = self.store.get_head(1)
        tx_mgr = InMemoryTxManager(self.store)

        tx_a = tx_mgr.begin()
        self.store.persist_layout(self.layout.with_groups(()))
        tx_b = tx_mgr.begin()
        renamed = self.store.persist_layout(other.with_groups((Group("Renamed", (UiElement("Tip", uid="C"),)),)))
        tx_b.commit()
        tx_a.rollback()

        self.assertTrue(tx_a.rolled_back)
        self.assertTrue(tx_b.committed)
        self.assertEqual(self.store.get_head(1), head_1)
        self.assertEqual(self.store.load_layout(1), self.layout)
        self.assertEqual(len(self.store.list_history(1)), 1)
        self.assertEqual(self.store.load_layout(2), renamed)
        self.assertEqual([g.name for g in self.store.load_layout(2).groups], ["Renamed"])
        self.assertEqual(len(self.store.list_history(2)), 2)

    def test_rollback_without_writes_keeps_other_commits(self) -> None:
        tx_mgr = InMemoryTxManager(self.store)
        tx_a = tx_mgr.begin()
        tx_b = tx_mgr.begin()
        updated = self.store.persist_layout(self.layout.with_groups((Group("Main", ()),)))
        tx_b.commit()
        tx_a.rollback()
        self.assertEqual(self.store.load_layout(1), updated)
        self.assertEqual(self.store.get_head(1), layout_hash(updated.to_dict()))

    def test_rollback_keeps_head_moved_by_later_commit(self) -> None:
        tx_mgr = InMemoryTxManager(self.store)
        tx_a = tx_mgr.begin()
        self.store.persist_layout(self.layout.with_groups(()))
        tx_b = tx_mgr.begin()
        later = self.store.persist_layout(self.layout.with_groups((Group("Later", ()),)))
        tx_b.commit()
        tx_a.rollback()
        self.assertEqual(self.store.load_layout(1), later)
        self.assertEqual([h["action"] for h in self.store.list_history(1)], ["update", "create"])

    def test_rollback_undoes_create(self) -> None:
        tx = InMemoryTxManager(self.store).begin()
        self.store.create_layout("tag", layout_id=5)
        tx.rollback()
        with self.assertRaises(LayoutNotFound):
            self.store.load_layout(5)
        self.assertEqual(self.store.list_history(5), [])

    def test_writes_outside_a_transaction_are_not_journaled(self) -> None:
        tx = InMemoryTxManager(self.store).begin()
        tx.commit()
        updated = self.store.persist_layout(self.layout.with_groups(()))
        InMemoryTxManager(self.store).begin().rollback()
        self.assertEqual(self.store.load_layout(1), updated)


if __name__ == "__main__":
    unittest.main()
