from __future__ import annotations

import unittest

from exposure.api.schemas import NodeDetails
from exposure.services.formatters import (
    classify_node_type,
    format_apy,
    format_chain_label,
    format_usd_compact,
    node_type_label,
)
from exposure.services.logos import fallback_monogram, has_chain_logo, node_logos

from support import node


class FormatterTests(unittest.TestCase):
    def test_chain_labels(self) -> None:
        self.assertEqual(format_chain_label("ETH"), "Ethereum")
        self.assertEqual(format_chain_label("plasma"), "Plasma")
        self.assertEqual(format_chain_label(None), "Unknown")

    def test_compact_usd(self) -> None:
        self.assertEqual(format_usd_compact(1_234_567), "$1.2M")
        self.assertEqual(format_usd_compact(1e9), "$1B")
        self.assertEqual(format_usd_compact(-2500), "-$2.5K")
        self.assertEqual(format_usd_compact(950), "$950.00")
        self.assertEqual(format_usd_compact(None), "-")

    def test_apy_accepts_fraction_or_percent(self) -> None:
        self.assertEqual(format_apy(0.045), "4.5%")
        self.assertEqual(format_apy(4.5), "4.5%")
        self.assertEqual(format_apy(None), "-")

    def test_node_type_classification(self) -> None:
        self.assertEqual(classify_node_type(NodeDetails(kind="Yield")), "yield-vault")
        self.assertEqual(classify_node_type(NodeDetails(kind="Lending")), "lending")
        self.assertEqual(classify_node_type(NodeDetails(kind="Staked")), "staked-locked")
        self.assertEqual(classify_node_type(None, "Vault"), "yield-vault")
        self.assertEqual(classify_node_type(NodeDetails(kind="Deposit")), "default")

    def test_type_label_prefers_override_then_subtype(self) -> None:
        details = NodeDetails(kind="Yield", subtype="Earn Vault")
        self.assertEqual(node_type_label(details), "Earn Vault")
        self.assertEqual(node_type_label(details, "Custom"), "Custom")


class LogoTests(unittest.TestCase):
    def test_logo_keys_come_first_with_protocol_logo(self) -> None:
        vault = node("eth:euler:0x1", "Prime", protocol="euler", logo_keys=["USDC"])
        self.assertEqual(node_logos(vault), ["/logos/assets/usdc.svg", "/logos/protocols/euler.svg"])

    def test_market_names_yield_two_assets(self) -> None:
        self.assertEqual(node_logos(node("eth:m:1", "WETH/USDC")), ["/logos/assets/weth.svg", "/logos/assets/usdc.svg"])
        self.assertEqual(node_logos(node("eth:p:1", "PT-USR")), ["/logos/assets/pt.svg", "/logos/assets/usr.svg"])

    def test_symbol_name_then_protocol_fallback(self) -> None:
        self.assertEqual(node_logos(node("eth:e:1", "sUSDe")), ["/logos/assets/susde.svg"])
        self.assertEqual(
            node_logos(node("eth:morpho:1", "Gauntlet Prime Vault", protocol="morpho")),
            ["/logos/protocols/morpho.svg"],
        )
        self.assertEqual(node_logos(node("eth:x:1", "Some Long Position")), [])

    def test_chain_aliases_and_monogram(self) -> None:
        self.assertTrue(has_chain_logo("Ethereum"))
        self.assertFalse(has_chain_logo("bsc"))
        self.assertEqual(fallback_monogram(" usde "), "US")
        self.assertEqual(fallback_monogram(""), "?")


if __name__ == "__main__":
    unittest.main()
