from __future__ import annotations

import importlib.util
import io
import json
import sys
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import patch

from exposure.services.adapters.ethena import USDE_ROOT_ID

from support import FakeAdapter, node

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SCRIPT_PATH = PROJECT_ROOT / "scripts" / "build_graphs.py"
ARB_USDE_ID = "arb:ethena:0x5d3a1ff2b6bab83b63cd9ad0787074081a52ef34"


def _load_build_module():
    spec = importlib.util.spec_from_file_location("build_graphs", SCRIPT_PATH)
    assert spec and spec.loader
    module = importlib.util.module_from_spec(spec)
    sys.modules[spec.name] = module
    spec.loader.exec_module(module)
    return module


def _ethena_adapter() -> FakeAdapter:
    root = node(USDE_ROOT_ID, "USDe", protocol="ethena", tvl_usd=1000.0)
    leaf = node("global:ethena:binance:usdt", "USDT")
    return FakeAdapter("ethena", {"usde": (root, [(leaf, 1000.0)])})


class BuildGraphsScriptTests(unittest.TestCase):
    def setUp(self) -> None:
        self.module = _load_build_module()

    def test_writes_canonical_alias_and_search_index(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with patch.object(self.module, "create_adapters", return_value=[_ethena_adapter()]):
                with redirect_stdout(io.StringIO()) as out:
                    code = self.module.main(["--adapters", "ethena", "--output-dir", tmp])

            self.assertEqual(code, 0)
            ethena_dir = Path(tmp) / "ethena"
            self.assertEqual(
                sorted(p.name for p in ethena_dir.glob("*.json")),
                sorted([f"{USDE_ROOT_ID}.json", f"{ARB_USDE_ID}.json"]),
            )
            alias = json.loads((ethena_dir / f"{ARB_USDE_ID}.json").read_text(encoding="utf-8"))
            self.assertEqual(alias["nodes"][0]["id"], ARB_USDE_ID)
            self.assertEqual(alias["nodes"][0]["chain"], "arb")
            self.assertEqual(alias["edges"][0]["from"], ARB_USDE_ID)

            index = json.loads((Path(tmp) / "search-index.json").read_text(encoding="utf-8"))
            self.assertEqual({entry["chain"] for entry in index}, {"eth", "arb"})
            self.assertIn("2 snapshots written", out.getvalue())

    def test_unknown_adapter_exits_with_usage_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            self.assertEqual(self.module.main(["--adapters", "nope", "--output-dir", tmp]), 2)

    def test_no_snapshots_is_failure(self) -> None:
        failing = FakeAdapter("ethena", {}, fail_catalog=OSError("down"))
        with tempfile.TemporaryDirectory() as tmp:
            with patch.object(self.module, "create_adapters", return_value=[failing]):
                with redirect_stdout(io.StringIO()):
                    code = self.module.main(["--output-dir", tmp, "--skip-search-index"])
            self.assertEqual(code, 1)
            self.assertFalse((Path(tmp) / "search-index.json").exists())


if __name__ == "__main__":
    unittest.main()
