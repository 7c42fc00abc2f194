from __future__ import annotations

import unittest

from exposure.services.graph_store import DraftGraphStore
from exposure.services.orchestrator import build_draft_graphs_by_asset, build_snapshots
from exposure.services.shared.http import FetchError

from support import FakeAdapter, edge, node


class DraftGraphStoreTests(unittest.TestCase):
    def test_root_stays_first_and_is_not_overwritten(self) -> None:
        root = node("eth:p:root", "Root")
        store = DraftGraphStore(root)
        store.add_node(node("eth:p:a", "A"))
        store.add_node(node("ETH:P:ROOT", "Impostor"))

        snap = store.to_snapshot()

        self.assertEqual(snap.nodes[0].name, "Root")
        self.assertEqual([n.id for n in snap.nodes], ["eth:p:root", "eth:p:a"])

    def test_nodes_last_write_wins_by_normalized_id(self) -> None:
        store = DraftGraphStore(node("eth:p:root"))
        store.add_node(node("eth:p:a", "first"))
        store.add_node(node("ETH:p:A", "second"))

        snap = store.to_snapshot()

        self.assertEqual(len(snap.nodes), 2)
        self.assertEqual(snap.nodes[1].name, "second")

    def test_edges_dedupe_on_endpoints_and_lending_side(self) -> None:
        store = DraftGraphStore(node("eth:p:root"))
        store.add_edge(edge("eth:p:root", "eth:p:a", 1.0))
        store.add_edge(edge("eth:p:root", "eth:p:a", 2.0))
        store.add_edge(edge("eth:p:m", "eth:token:x", 5.0, "collateral"))
        store.add_edge(edge("eth:p:m", "eth:token:x", -3.0, "borrow"))

        snap = store.to_snapshot(sources=["p"])

        self.assertEqual(len(snap.edges), 3)
        self.assertEqual(snap.edges[0].allocation_usd, 2.0)
        self.assertEqual(snap.sources, ["p"])


class OrchestratorTests(unittest.TestCase):
    def test_builds_one_store_per_asset_with_root_first(self) -> None:
        adapter = FakeAdapter(
            "alpha",
            {
                "A": (node("eth:alpha:a", "A"), [(node("eth:x:1"), 10.0), (node("eth:x:2"), 5.0)]),
                "B": (node("eth:alpha:b", "B"), [(node("eth:x:3"), 1.0)]),
            },
        )

        snapshots = build_snapshots([adapter])

        self.assertEqual(set(snapshots), {"A", "B"})
        self.assertEqual(snapshots["A"].nodes[0].id, "eth:alpha:a")
        self.assertEqual(len(snapshots["A"].edges), 2)
        self.assertEqual(snapshots["A"].sources, ["alpha"])
        self.assertEqual(adapter.catalog_calls, 1)

    def test_failing_adapter_is_skipped_and_others_survive(self) -> None:
        broken = FakeAdapter("broken", {}, fail_catalog=FetchError("all chains down"))
        healthy = FakeAdapter("ok", {"A": (node("eth:ok:a"), [(node("eth:x:1"), 1.0)])})

        with self.assertLogs("exposure.services.orchestrator", level="WARNING") as logs:
            stores = build_draft_graphs_by_asset([broken, healthy])

        self.assertEqual(list(stores), ["A"])
        self.assertTrue(any("broken" in line for line in logs.output))

    def test_malformed_catalog_skips_only_that_adapter(self) -> None:
        class _MalformedAdapter(FakeAdapter):
            def get_asset_by_allocations(self, catalog):
                raise KeyError("vaults")

        broken = _MalformedAdapter("broken", {"A": (node("eth:broken:a"), [])})
        healthy = FakeAdapter("ok", {"B": (node("eth:ok:b"), [(node("eth:x:1"), 1.0)])})

        with self.assertLogs("exposure.services.orchestrator", level="WARNING"):
            snapshots = build_snapshots([broken, healthy])

        self.assertEqual(list(snapshots), ["B"])

    def test_later_adapter_extends_existing_asset_without_new_root(self) -> None:
        first = FakeAdapter("one", {"A": (node("eth:one:a", "A"), [(node("eth:x:1"), 1.0)])})
        second = FakeAdapter("two", {"A": (node("eth:two:a", "other root"), [(node("eth:x:2"), 2.0)])})

        snap = build_snapshots([first, second])["A"]

        self.assertEqual(snap.nodes[0].id, "eth:one:a")
        self.assertEqual([n.id for n in snap.nodes], ["eth:one:a", "eth:x:1", "eth:x:2"])
        self.assertTrue(all(e.from_ == "eth:one:a" for e in snap.edges))
        self.assertEqual(snap.sources, ["one", "two"])

    def test_asset_without_root_is_skipped(self) -> None:
        adapter = FakeAdapter("alpha", {"A": (None, [])})

        self.assertEqual(build_snapshots([adapter]), {})


if __name__ == "__main__":
    unittest.main()
