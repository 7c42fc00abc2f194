from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from exposure.api.schemas import SearchIndexEntry
from exposure.services.search_index import (
    SearchFilters,
    build_search_index,
    filter_search_index,
    infer_logo_keys,
    search_facets,
    write_search_index,
)
from exposure.services.snapshot_io import write_json_file


def _root(**fields):
    base = {"id": "eth:euler:0xvault", "name": "Prime Vault"}
    base.update(fields)
    return base


def _snap(root, leaves=(), edges=()):
    return {"nodes": [root, *leaves], "edges": list(edges)}


class InferLogoKeysTests(unittest.TestCase):
    def test_explicit_logo_keys_win(self) -> None:
        root = _root(logoKeys=["usdc"], details={"underlyingSymbol": "WETH"}, name="USDe")
        self.assertEqual(infer_logo_keys(_snap(root), root), ["usdc"])

    def test_underlying_symbol_before_name(self) -> None:
        root = _root(details={"underlyingSymbol": " WETH "}, name="USDe")
        self.assertEqual(infer_logo_keys(_snap(root), root), ["WETH"])

    def test_token_like_root_name(self) -> None:
        root = _root(name="sUSDe")
        self.assertEqual(infer_logo_keys(_snap(root), root), ["sUSDe"])

    def test_heaviest_leaf_symbol_accumulates_market_bases(self) -> None:
        root = _root()
        leaves = [
            {"id": "l1", "name": "WETH/USDC"},
            {"id": "l2", "name": "WETH-USDT"},
            {"id": "l3", "name": "USDC"},
            {"id": "l4", "name": "wbtc-usdc"},
        ]
        edges = [
            {"from": root["id"], "to": "l1", "allocationUsd": 40},
            {"from": root["id"], "to": "l2", "allocationUsd": -30},
            {"from": root["id"], "to": "l3", "allocationUsd": 60},
            {"from": root["id"], "to": "l4", "allocationUsd": 500},
        ]
        # WETH = 40 + 30 beats USDC = 60; lower-case dash pairs are ignored.
        self.assertEqual(infer_logo_keys(_snap(root, leaves, edges), root), ["WETH"])

    def test_no_weighted_symbol_gives_empty_list(self) -> None:
        root = _root()
        leaves = [{"id": "l1", "name": "Some Long Position Name"}, {"id": "l2", "name": "USDC"}]
        edges = [
            {"from": root["id"], "to": "l1", "allocationUsd": 10},
            {"from": root["id"], "to": "l2", "allocationUsd": 0},
        ]
        self.assertEqual(infer_logo_keys(_snap(root, leaves, edges), root), [])


class BuildSearchIndexTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.out = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _write(self, protocol: str, name: str, payload) -> None:
        write_json_file(self.out / protocol / f"{name}.json", payload)

    def test_entries_are_deduped_sorted_and_projected(self) -> None:
        usde = _root(
            id="eth:ethena:0xusde",
            name="USDe",
            protocol="ethena",
            tvlUsd=1000.0,
            apy="bad",
            details={"kind": "Deposit", "curator": "Ethena Labs"},
            displayName="  USDe Dollar ",
        )
        self._write("ethena", "eth:ethena:0xusde", _snap(usde))
        self._write("ethena-copy", "eth:ethena:0xusde", _snap(usde))
        self._write(
            "midas",
            "eth:midas-rwa:0xm",
            _snap(_root(id="eth:midas-rwa:0xm", name="mTBILL", apy=0.04, details={"kind": "Yield", "subtype": "RWA Vault"})),
        )
        self._write("euler", "no-root", {"nodes": [{"id": "", "name": ""}], "edges": []})

        entries = build_search_index(self.out)

        self.assertEqual([e.name for e in entries], ["mTBILL", "USDe"])
        usde_entry = entries[1]
        self.assertEqual(usde_entry.protocol, "ethena")
        self.assertEqual(usde_entry.chain, "eth")
        self.assertEqual(usde_entry.node_id, "eth:ethena:0xusde")
        self.assertIsNone(usde_entry.apy)
        self.assertEqual(usde_entry.tvl_usd, 1000.0)
        self.assertEqual(usde_entry.curator, "Ethena Labs")
        self.assertEqual(usde_entry.display_name, "USDe Dollar")
        self.assertEqual(usde_entry.type_label, "Deposit")
        midas = entries[0]
        self.assertEqual(midas.protocol, "midas")
        self.assertEqual(midas.type_label, "RWA Vault")
        self.assertEqual(midas.logo_keys, ["mTBILL"])

    def test_unreadable_file_is_skipped(self) -> None:
        (self.out / "ethena").mkdir(parents=True)
        (self.out / "ethena" / "broken.json").write_text("{not json", encoding="utf-8")
        self._write("ethena", "ok", _snap(_root(id="eth:ethena:0x1", name="USDe")))

        with self.assertLogs("exposure.services.search_index", level="WARNING"):
            entries = build_search_index(self.out)

        self.assertEqual([e.id for e in entries], ["eth:ethena:0x1"])

    def test_write_search_index_keeps_null_fields(self) -> None:
        self._write("ethena", "a", _snap(_root(id="eth:ethena:0x1", name="Long Name Vault")))

        write_search_index(self.out)

        payload = json.loads((self.out / "search-index.json").read_text(encoding="utf-8"))
        self.assertEqual(len(payload), 1)
        self.assertIsNone(payload[0]["apy"])
        self.assertIsNone(payload[0]["tvlUsd"])
        self.assertIsNone(payload[0]["curator"])
        self.assertNotIn("logoKeys", payload[0])
        self.assertNotIn("typeLabel", payload[0])


def _entry(name: str, **fields) -> SearchIndexEntry:
    base = {"id": f"eth:p:{name}", "chain": "eth", "protocol": "euler", "name": name, "node_id": f"eth:p:{name}"}
    base.update(fields)
    return SearchIndexEntry(**base)


class SearchFilterTests(unittest.TestCase):
    def test_apy_bounds_compare_in_percent(self) -> None:
        entries = [
            _entry("fraction", apy=0.05),
            _entry("percent", apy=7.0),
            _entry("unknown"),
        ]

        results = filter_search_index(entries, SearchFilters(apy_min="4", apy_max="6"))

        self.assertEqual([e.name for e in results], ["fraction"])

    def test_text_protocol_chain_and_curator_filters(self) -> None:
        entries = [
            _entry("Prime", curator="Gauntlet"),
            _entry("Yield", chain="base", curator="Gauntlet"),
            _entry("USDe", protocol="ethena"),
        ]

        self.assertEqual([e.name for e in filter_search_index(entries, SearchFilters(query="pri"))], ["Prime"])
        self.assertEqual([e.name for e in filter_search_index(entries, SearchFilters(chain="BASE"))], ["Yield"])
        self.assertEqual(
            [e.name for e in filter_search_index(entries, SearchFilters(protocol="euler", curator="Gauntlet"))],
            ["Prime", "Yield"],
        )
        self.assertFalse(SearchFilters().is_active)
        self.assertTrue(SearchFilters(apy_min=" 1").is_active)

    def test_facets_scope_curators(self) -> None:
        entries = [
            _entry("A", curator="Gauntlet"),
            _entry("B", chain="base", curator="Re7"),
            _entry("C", protocol="ethena", curator=" "),
        ]

        facets = search_facets(entries, chain="base")

        self.assertEqual(facets["protocols"], ["ethena", "euler"])
        self.assertEqual(facets["chains"], ["base", "eth"])
        self.assertEqual(facets["curators"], ["Re7"])


if __name__ == "__main__":
    unittest.main()
