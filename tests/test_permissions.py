import unittest

from bundle_gen.models import AlternativeDependency, OneDependency, parse_permission
from bundle_gen.parser import parse_manifest
from bundle_gen.permissions import collect_provided, is_satisfied, resolve


def make_raw(app_id="lnme", **metadata):
    base = {
        "name": app_id.title(),
        "version": "1.0.0",
        "category": "Lightning",
        "tagline": "Test app",
    }
    base.update(metadata)
    return {
        "metadata": base,
        "services": {"web": {"image": f"example/{app_id}:1.0", "port": 3000}},
    }


class PermissionModelTests(unittest.TestCase):
    def test_parse_permission_variants(self):
        self.assertEqual(parse_permission("lnd"), OneDependency(capability="lnd"))
        self.assertEqual(
            parse_permission(["lnd", "c-lightning"]),
            AlternativeDependency(alternatives=("lnd", "c-lightning")),
        )

    def test_parse_permission_rejects_empty_alternatives(self):
        with self.assertRaises(ValueError):
            parse_permission([])
        with self.assertRaises(ValueError):
            parse_permission("  ")
        with self.assertRaises(ValueError):
            parse_permission({"lnd": True})

    def test_permissions_are_hashable_and_structurally_equal(self):
        items = {
            OneDependency(capability="lnd"),
            OneDependency(capability="lnd"),
            AlternativeDependency(alternatives=("a", "b")),
            AlternativeDependency(alternatives=("a", "b")),
        }
        self.assertEqual(len(items), 2)
        self.assertNotEqual(
            AlternativeDependency(alternatives=("a", "b")),
            AlternativeDependency(alternatives=("b", "a")),
        )

    def test_permissions_serialize_untagged(self):
        self.assertEqual(OneDependency(capability="lnd").model_dump(), "lnd")
        self.assertEqual(
            AlternativeDependency(alternatives=("lnd", "c-lightning")).model_dump(),
            ["lnd", "c-lightning"],
        )


class ResolveTests(unittest.TestCase):
    def test_single_dependency_missing(self):
        requirement = OneDependency(capability="lightning")
        resolution = resolve([requirement], {"bitcoind"})
        self.assertFalse(resolution.satisfied)
        self.assertEqual(resolution.missing, [OneDependency(capability="lightning")])

    def test_alternative_dependency_satisfied_by_any_member(self):
        requirement = AlternativeDependency(alternatives=("lnd", "c-lightning"))
        resolution = resolve([requirement], {"c-lightning"})
        self.assertTrue(resolution.satisfied)
        self.assertIsNone(resolution.missing)

    def test_missing_keeps_declaration_order(self):
        requirements = [
            OneDependency(capability="electrum"),
            OneDependency(capability="bitcoind"),
            AlternativeDependency(alternatives=("lnd", "c-lightning")),
            OneDependency(capability="mempool"),
        ]
        resolution = resolve(requirements, {"bitcoind"})
        self.assertEqual(
            resolution.missing,
            [requirements[0], requirements[2], requirements[3]],
        )

    def test_empty_requirements_are_satisfied(self):
        self.assertTrue(resolve([], set()).satisfied)

    def test_provided_accepts_any_set_like(self):
        requirement = OneDependency(capability="bitcoind")
        self.assertTrue(is_satisfied(requirement, frozenset({"bitcoind"})))
        self.assertTrue(is_satisfied(requirement, {"bitcoind": 1}.keys()))


class CollectProvidedTests(unittest.TestCase):
    def test_collects_ids_implements_and_container_provisions(self):
        virtual = parse_manifest("lnd", make_raw("lnd", implements="lightning"))
        raw = make_raw("bitcoin-node")
        raw["services"]["web"]["provides"] = ["bitcoind", "electrum"]
        node = parse_manifest("bitcoin-node", raw)

        provided = collect_provided(["tor"], [virtual, node])

        self.assertEqual(
            provided,
            {"tor", "lnd", "lightning", "bitcoin-node", "bitcoind", "electrum"},
        )


if __name__ == "__main__":
    unittest.main()
