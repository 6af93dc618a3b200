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
from app.tools import TOOL_DEFINITIONS, LayoutTools
from fieldlayout.elements import AttributePlacement, FieldPlacement, UiElement
from fieldlayout.errors import LayoutError, LayoutNotFound, MalformedSpecification, UnresolvedFieldReference
from fieldlayout.layout import Group
from layout_reconcile import LayoutReconciler
from layout_store import LayoutStore


class _FlakyStore(LayoutStore):
    """Fails to list fields once armed, after a layout has been persisted."""

    def __init__(self) -> None:
        super().__init__()
        self.armed = False

    def list_fields(self):
        if self.armed:
            raise RuntimeError("field catalog unavailable")
        return super().list_fields()


class TestLayoutTools(unittest.TestCase):
    def setUp(self) -> None:
        self.store = _FlakyStore()
        self.store.add_field("Body", "body", "PlainText", field_id=7)
        self.store.add_field("Summary", "summary", "PlainText", field_id=9)
        self.store.create_layout(
            "entry",
            [
                Group(
                    "Content",
                    (
                        AttributePlacement("title", uid="T", mandatory=True, requirable=False, translatable=True),
                        FieldPlacement(7, uid="A"),
                    ),
                )
            ],
            layout_id=1,
        )
        self.tools = LayoutTools(self.store, InMemoryTxManager(self.store))

    def test_definitions(self) -> None:
        names = [t["name"] for t in self.tools.definitions()]
        self.assertEqual(names, ["get_field_layout", "update_field_layout", "get_fields"])
        self.assertEqual(TOOL_DEFINITIONS[1]["inputSchema"]["required"], ["fieldLayoutId", "groups"])

    def test_get_field_layout(self) -> None:
        result = self.tools.call("get_field_layout", {"fieldLayoutId": 1})
        self.assertIn("_notes", result)
        layout = result["fieldLayout"]
        self.assertEqual(layout["type"], "entry")
        elements = layout["groups"][0]["elements"]
        self.assertEqual([el["uid"] for el in elements], ["T", "A"])
        self.assertEqual(elements[1]["fieldHandle"], "body")

    def test_get_field_layout_accepts_digit_string(self) -> None:
        result = self.tools.call("get_field_layout", {"fieldLayoutId": "1"})
        self.assertEqual(result["fieldLayout"]["id"], 1)

    def test_get_missing_layout(self) -> None:
        with self.assertRaises(LayoutNotFound):
            self.tools.call("get_field_layout", {"fieldLayoutId": 5})

    def test_round_trip_through_tools_keeps_attributes(self) -> None:
        view = self.tools.call("get_field_layout", {"fieldLayoutId": 1})["fieldLayout"]
        result = self.tools.call("update_field_layout", {"fieldLayoutId": 1, "groups": view["groups"]})
        self.assertEqual(result["fromHash"], result["toHash"])
        self.assertEqual(result["fieldLayout"], view)
        self.assertEqual(result["warnings"], [])
        self.assertIsInstance(result["_notes"], list)

    def test_update_accepts_tabs_alias(self) -> None:
        result = self.tools.call(
            "update_field_layout",
            {"fieldLayoutId": 1, "tabs": [{"name": "Main", "elements": [{"uid": "A", "required": True}]}]},
        )
        groups = result["fieldLayout"]["groups"]
        self.assertEqual(groups[0]["name"], "Main")
        self.assertEqual([el["uid"] for el in groups[0]["elements"]], ["A"])
        self.assertTrue(groups[0]["elements"][0]["required"])

    def test_update_reports_skipped_elements(self) -> None:
        result = self.tools.call(
            "update_field_layout",
            {"fieldLayoutId": 1, "groups": [{"name": "Main", "elements": [{"uid": "A"}, {"type": "Slider"}]}]},
        )
        self.assertEqual([w["code"] for w in result["warnings"]], ["ELEMENT_SKIPPED"])

    def test_failed_update_leaves_layout_unchanged(self) -> None:
        head = self.store.get_head(1)
        with self.assertRaises(UnresolvedFieldReference):
            self.tools.call(
                "update_field_layout",
                {"fieldLayoutId": 1, "groups": [{"name": "Main", "elements": [{"type": "FieldPlacement", "fieldId": 999999}]}]},
            )
        self.assertEqual(self.store.get_head(1), head)

    def test_error_after_persist_rolls_back(self) -> None:
        head = self.store.get_head(1)
        self.store.armed = True
        with self.assertRaises(RuntimeError):
            self.tools.call(
                "update_field_layout",
                {"fieldLayoutId": 1, "groups": [{"name": "Main", "elements": [{"uid": "A"}]}]},
            )
        self.store.armed = False
        self.assertEqual(self.store.get_head(1), head)
        self.assertEqual(len(self.store.list_history(1)), 1)

    def test_overlapping_rollback_keeps_committed_reconcile(self) -> None:
        self.store.create_layout(
            "entry", [Group("Side", (FieldPlacement(9, uid="B"), UiElement("Tip", uid="C")))], layout_id=2
        )
        tx_mgr = InMemoryTxManager(self.store)
        tx_a = tx_mgr.begin()
        tx_b = tx_mgr.begin()
        result = LayoutReconciler(self.store).reconcile(2, [{"name": "Renamed", "elements": [{"uid": "B"}]}])
        tx_b.commit()
        tx_a.rollback()
        self.assertEqual(self.store.get_head(2), result.to_hash)
        self.assertEqual([g.name for g in self.store.load_layout(2).groups], ["Renamed"])

    def test_get_fields(self) -> None:
        all_fields = self.tools.call("get_fields", {})
        self.assertEqual([f["id"] for f in all_fields["fields"]], [7, 9])
        placed = self.tools.call("get_fields", {"fieldLayoutId": 1})
        self.assertEqual(placed["fieldLayoutId"], 1)
        self.assertEqual([f["id"] for f in placed["fields"]], [7])
        self.assertEqual(placed["fields"][0]["group"], "Content")
        self.assertEqual(self.tools.call("get_fields", None), all_fields)

    def test_bad_calls(self) -> None:
        with self.assertRaises(LayoutError) as ctx:
            self.tools.call("delete_field_layout", {})
        self.assertEqual(ctx.exception.code, "TOOL_UNKNOWN")
        with self.assertRaises(MalformedSpecification):
            self.tools.call("get_field_layout", [])
        with self.assertRaises(MalformedSpecification):
            self.tools.call("get_field_layout", {})
        with self.assertRaises(MalformedSpecification):
            self.tools.call("update_field_layout", {"fieldLayoutId": 1})


if __name__ == "__main__":
    unittest.main()
