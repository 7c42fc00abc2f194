from __future__ import annotations

import unittest

from exposure.services.drilldown import DrilldownRouter, LocalDrilldown, RouteTransition, TerminalNotice
from exposure.services.navigation import AssetNavigator
from exposure.services.notifications import TerminalToast

from support import edge, node, snapshot

ROOT = "eth:resolv:0xusr"


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class _FakeProbe:
    def __init__(self, existing: set[str] | None = None, error: Exception | None = None, on_probe=None) -> None:
        self.existing = existing or set()
        self.error = error
        self.on_probe = on_probe
        self.calls: list[tuple] = []

    def snapshot_exists(self, node_id, protocol=None, chain=None, origin=None) -> bool:
        self.calls.append((node_id, protocol, chain, origin))
        if self.on_probe is not None:
            self.on_probe()
        if self.error is not None:
            raise self.error
        return node_id in self.existing


def _graph():
    return snapshot(
        [
            node(ROOT, "USR", protocol="resolv"),
            node("eth:morpho:0xvault", "Vault", protocol="morpho"),
            node("eth:aave3:pool", "Aave", kind="Lending"),
            node("eth:token:weth", "WETH"),
            node("eth:pendle:pt", "PT-USR"),
        ],
        [
            edge(ROOT, "eth:morpho:0xvault", 50),
            edge(ROOT, "eth:aave3:pool", 30),
            edge(ROOT, "eth:pendle:pt", 20),
            edge("eth:aave3:pool", "eth:token:weth", 30, "collateral"),
            edge("eth:morpho:0xvault", "eth:token:weth", 50),
        ],
    )


class DrilldownRouterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.graph = _graph()
        self.nav = AssetNavigator(ROOT, chain="eth", protocol="resolv")
        self.nav.load(lambda *_: self.graph)
        self.clock = _FakeClock()
        self.toast = TerminalToast(clock=self.clock)

    def _router(self, probe: _FakeProbe) -> DrilldownRouter:
        return DrilldownRouter(self.nav, probe, self.toast)

    def test_existing_snapshot_routes_to_new_asset(self) -> None:
        probe = _FakeProbe(existing={"eth:morpho:0xvault"})
        vault = self.graph.nodes[1].model_copy(update={"id": "ETH:Morpho:0xVault"})

        outcome = self._router(probe).select(vault)

        self.assertEqual(
            outcome,
            RouteTransition(asset_id="eth:morpho:0xvault", protocol="morpho", chain="eth", origin=ROOT),
        )
        self.assertEqual(probe.calls, [("eth:morpho:0xvault", "morpho", "eth", ROOT)])
        self.assertEqual(self.nav.asset_id, "eth:morpho:0xvault")
        self.assertEqual(self.nav.origin, ROOT)
        self.assertEqual(outcome.query_params(), {"origin": ROOT, "protocol": "morpho", "chain": "eth"})

    def test_existing_origin_is_preserved(self) -> None:
        self.nav.origin = "eth:ethena:0xusde"
        probe = _FakeProbe(existing={"eth:morpho:0xvault"})

        outcome = self._router(probe).select(self.graph.nodes[1])

        self.assertEqual(outcome.origin, "eth:ethena:0xusde")

    def test_missing_snapshot_falls_back_to_local_drilldown(self) -> None:
        outcome = self._router(_FakeProbe()).select(self.graph.nodes[1])

        self.assertEqual(outcome, LocalDrilldown(node_id="eth:morpho:0xvault"))
        self.assertEqual(self.nav.focus_id, "eth:morpho:0xvault")
        self.assertEqual(self.nav.focus_stack, (ROOT,))

    def test_lending_node_and_edge_never_probe(self) -> None:
        probe = _FakeProbe(existing={"eth:aave3:pool", "eth:morpho:0xvault"})
        router = self._router(probe)

        self.assertIsInstance(router.select(self.graph.nodes[2]), LocalDrilldown)
        self.nav.handle_back_one_step()
        self.assertIsInstance(router.select(self.graph.nodes[1], lending_position="collateral"), LocalDrilldown)
        self.assertEqual(probe.calls, [])

    def test_leaf_without_children_raises_terminal_toast(self) -> None:
        outcome = self._router(_FakeProbe()).select(self.graph.nodes[4])

        self.assertIsInstance(outcome, TerminalNotice)
        self.assertEqual(outcome.message, "Terminal Node Reach: PT-USR has no further downstream allocations.")
        self.assertEqual(self.toast.current.message, outcome.message)
        self.assertEqual(self.nav.focus_id, ROOT)

    def test_probe_error_counts_as_missing(self) -> None:
        outcome = self._router(_FakeProbe(error=OSError("boom"))).select(self.graph.nodes[1])
        self.assertIsInstance(outcome, LocalDrilldown)

    def test_result_dropped_when_navigator_moves_during_probe(self) -> None:
        probe = _FakeProbe(existing={"eth:morpho:0xvault"}, on_probe=lambda: self.nav.set_asset("eth:other:0x1"))

        self.assertIsNone(self._router(probe).select(self.graph.nodes[1]))
        self.assertEqual(self.nav.asset_id, "eth:other:0x1")

    def test_result_dropped_after_close(self) -> None:
        probe = _FakeProbe(on_probe=self.nav.close)
        self.assertIsNone(self._router(probe).select(self.graph.nodes[1]))

    def test_selecting_current_asset_skips_probe(self) -> None:
        probe = _FakeProbe(existing={ROOT})

        outcome = self._router(probe).select(self.graph.nodes[0])

        self.assertEqual(probe.calls, [])
        self.assertIsInstance(outcome, LocalDrilldown)


class TerminalToastTests(unittest.TestCase):
    def test_auto_close_then_removal(self) -> None:
        clock = _FakeClock()
        toast = TerminalToast(clock=clock)
        toast.show("first")

        clock.now = 2.5
        self.assertTrue(toast.current.open)
        clock.now = 2.6
        self.assertFalse(toast.current.open)
        clock.now = 2.7
        self.assertIsNotNone(toast.current)
        clock.now = 2.8
        self.assertIsNone(toast.current)

    def test_new_toast_supersedes_previous_deadline(self) -> None:
        clock = _FakeClock()
        toast = TerminalToast(clock=clock)
        toast.show("first")
        clock.now = 2.0
        state = toast.show("second")

        clock.now = 4.0
        self.assertEqual(toast.current, state)
        self.assertEqual(state.seq, 2)

    def test_manual_close(self) -> None:
        clock = _FakeClock()
        toast = TerminalToast(clock=clock)
        toast.show("first")
        clock.now = 1.0
        toast.close()

        self.assertFalse(toast.current.open)
        clock.now = 1.2
        self.assertIsNone(toast.current)


if __name__ == "__main__":
    unittest.main()
