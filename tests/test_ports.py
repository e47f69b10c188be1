import unittest

from bundle_gen.constants import DERIVED_PORT_BASE, DERIVED_PORT_SPAN
from bundle_gen.errors import PortConflictError
from bundle_gen.network import select_primary
from bundle_gen.parser import parse_manifest
from bundle_gen.ports import PortRegistry, allocate, allocate_app_ports, derive_port, external_port_for


def make_raw(services, **metadata):
    base = {
        "name": "Test",
        "version": "1.0.0",
        "category": "Utilities",
        "tagline": "Test app",
    }
    base.update(metadata)
    return {"metadata": base, "services": services}


def allocate_for(app_id, raw, registry):
    manifest = parse_manifest(app_id, raw)
    return allocate_app_ports(manifest, select_primary(manifest), registry)


class DerivePortTests(unittest.TestCase):
    def test_derived_port_is_stable_and_in_range(self):
        for app_id in ("nextcloud", "btc-rpc-explorer", "lnme", "x"):
            port = derive_port(app_id)
            self.assertEqual(port, derive_port(app_id))
            self.assertGreaterEqual(port, DERIVED_PORT_BASE)
            self.assertLess(port, DERIVED_PORT_BASE + DERIVED_PORT_SPAN)


class AllocateTests(unittest.TestCase):
    def setUp(self):
        self.registry = PortRegistry()

    def test_explicit_external_port_is_claimed(self):
        self.assertEqual(allocate(80, 8081, self.registry, "nextcloud"), (80, 8081))
        self.assertEqual(self.registry.owner(8081), "nextcloud")

    def test_missing_external_port_is_derived(self):
        internal, external = allocate(3000, None, self.registry, "lnme")
        self.assertEqual(internal, 3000)
        self.assertEqual(external, derive_port("lnme"))

    def test_conflict_is_reported_not_reassigned(self):
        allocate(80, 8081, self.registry, "nextcloud")
        with self.assertRaises(PortConflictError) as ctx:
            allocate(80, 8081, self.registry, "photoprism")
        self.assertEqual(ctx.exception.port, 8081)
        self.assertEqual(ctx.exception.owner, "nextcloud")
        self.assertEqual(self.registry.owner(8081), "nextcloud")

    def test_internal_ports_may_repeat_across_apps(self):
        allocate(80, 8081, self.registry, "nextcloud")
        self.assertEqual(allocate(80, 8082, self.registry, "photoprism"), (80, 8082))

    def test_port_owned_by_same_app_is_not_a_conflict(self):
        self.registry.seed(8081, "nextcloud")
        self.assertEqual(allocate(80, 8081, self.registry, "nextcloud"), (80, 8081))

    def test_single_port_and_app_allocation_pick_the_same_port(self):
        raw = make_raw({"web": {"image": "web", "port": 3000}})
        allocation = allocate_for("lnme", raw, PortRegistry())
        self.assertEqual(allocate(3000, None, self.registry, "lnme"), (3000, allocation.port))
        self.assertEqual(external_port_for("lnme", None), allocation.port)
        self.assertEqual(external_port_for("lnme", 8081), 8081)


class AllocateAppPortsTests(unittest.TestCase):
    def setUp(self):
        self.registry = PortRegistry()

    def test_primary_port_derived_from_app_id(self):
        allocation = allocate_for("lnme", make_raw({"web": {"image": "lnme", "port": 1323}}), self.registry)
        self.assertEqual(allocation.primary, "web")
        self.assertEqual(allocation.port, derive_port("lnme"))
        self.assertEqual(allocation.internal_port, 1323)

    def test_app_level_port_applies_to_primary(self):
        raw = make_raw({"web": {"image": "nextcloud", "port": 80}}, port=8081)
        allocation = allocate_for("nextcloud", raw, self.registry)
        self.assertEqual(allocation.external, {"web": 8081})

    def test_only_declared_secondary_ports_are_exposed(self):
        raw = make_raw(
            {
                "web": {"image": "mempool/frontend", "port": 8080},
                "api": {"image": "mempool/backend", "port": 8999, "externalPort": 8999},
                "db": {"image": "mariadb", "port": 3306, "protocol": "tcp"},
            },
            port=3006,
        )
        allocation = allocate_for("mempool", raw, self.registry)
        self.assertEqual(allocation.external, {"web": 3006, "api": 8999})
        self.assertEqual(self.registry.claimed(), {3006: "mempool", 8999: "mempool"})

    def test_duplicate_port_within_app_conflicts(self):
        raw = make_raw(
            {
                "web": {"image": "a", "port": 80, "externalPort": 9000},
                "admin": {"image": "b", "port": 81, "externalPort": 9000},
            }
        )
        with self.assertRaises(PortConflictError) as ctx:
            allocate_for("dup", raw, self.registry)
        self.assertEqual(ctx.exception.field, "services.admin.externalPort")
        self.assertEqual(self.registry.claimed(), {})

    def test_conflicting_app_claims_nothing(self):
        self.registry.seed(9001, "other")
        raw = make_raw(
            {
                "web": {"image": "a", "port": 80, "externalPort": 9000},
                "admin": {"image": "b", "port": 81, "externalPort": 9001},
            }
        )
        with self.assertRaises(PortConflictError):
            allocate_for("partial", raw, self.registry)
        self.assertIsNone(self.registry.owner(9000))

    def test_tor_only_app_claims_no_ports(self):
        raw = make_raw({"web": {"image": "a", "port": 80}}, torOnly=True)
        allocation = allocate_for("hidden", raw, self.registry)
        self.assertEqual(allocation.port, 0)
        self.assertEqual(allocation.internal_port, 80)
        self.assertEqual(self.registry.claimed(), {})

    def test_claimed_set_independent_of_allocation_order(self):
        apps = [
            ("a", make_raw({"web": {"image": "a", "port": 80}}, port=9100)),
            ("b", make_raw({"web": {"image": "b", "port": 80}}, port=9101)),
            ("c", make_raw({"web": {"image": "c", "port": 80}})),
        ]
        forward = PortRegistry()
        for app_id, raw in apps:
            allocate_for(app_id, raw, forward)
        backward = PortRegistry()
        for app_id, raw in reversed(apps):
            allocate_for(app_id, raw, backward)
        self.assertEqual(forward.claimed(), backward.claimed())


if __name__ == "__main__":
    unittest.main()
