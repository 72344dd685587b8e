"""Tests for the registry store: upserts, cascade, ordering, snapshot."""

from __future__ import annotations

import sqlite3
import threading

import pytest

from tailnet.registry import Endpoint, RegistryStore, StoreError


class TestHosts:
    def test_upsert_new_host(self, store):
        host = store.upsert_host("nas", "100.64.0.1")
        assert host.name == "nas"
        assert host.address == "100.64.0.1"
        assert host.created_at is not None

    def test_upsert_same_address_renames(self, store):
        store.upsert_host("nas", "100.64.0.1")
        store.upsert_host("storage", "100.64.0.1")
        hosts = store.list_hosts()
        assert len(hosts) == 1
        assert hosts[0].name == "storage"

    def test_get_host_missing(self, store):
        assert store.get_host("100.64.0.99") is None

    def test_delete_host_missing(self, store):
        assert store.delete_host("100.64.0.99") is False

    def test_rename_keeps_service_host_name(self, store):
        store.upsert_service("100.64.0.1", 8080, "dashboard", "nas")
        store.upsert_host("storage", "100.64.0.1")
        svc = store.get_service("100.64.0.1", 8080)
        # host_name is a write-time copy, not kept in sync
        assert svc.owning_host_name == "nas"


class TestServices:
    def test_upsert_new_service(self, store):
        store.upsert_host("nas", "100.64.0.1")
        svc = store.upsert_service("100.64.0.1", 8080, "dashboard", "nas")
        assert svc.endpoint == Endpoint("100.64.0.1", 8080)
        assert svc.service_name == "dashboard"
        assert svc.owning_host_name == "nas"

    def test_upsert_replaces_in_place(self, store):
        store.upsert_service("100.64.0.1", 8080, "dashboard", "nas")
        store.upsert_service("100.64.0.1", 8080, "grafana", "nas-2")
        services = store.list_services()
        assert len(services) == 1
        assert services[0].service_name == "grafana"
        assert services[0].owning_host_name == "nas-2"

    def test_upsert_is_idempotent(self, store):
        store.upsert_service("100.64.0.1", 8080, "dashboard", "nas")
        first = (store.list_hosts(), store.snapshot())
        store.upsert_service("100.64.0.1", 8080, "dashboard", "nas")
        assert [h.address for h in store.list_hosts()] == [h.address for h in first[0]]
        assert store.snapshot() == first[1]

    def test_auto_provisions_host(self, store):
        store.upsert_service("100.64.0.2", 22, "ssh", "pi")
        hosts = store.list_hosts()
        assert len(hosts) == 1
        assert hosts[0].address == "100.64.0.2"
        assert hosts[0].name == "pi"

    def test_existing_host_name_not_overwritten(self, store):
        store.upsert_host("nas", "100.64.0.1")
        store.upsert_service("100.64.0.1", 22, "ssh", "something-else")
        assert store.get_host("100.64.0.1").name == "nas"

    def test_delete_service(self, store):
        store.upsert_service("100.64.0.1", 8080, "dashboard", "nas")
        assert store.delete_service("100.64.0.1", 8080) is True
        assert store.get_service("100.64.0.1", 8080) is None
        # Host stays behind
        assert store.get_host("100.64.0.1") is not None

    def test_delete_service_missing(self, store):
        assert store.delete_service("100.64.0.1", 8080) is False

    def test_rejects_non_positive_port(self, store):
        with pytest.raises(StoreError):
            store.upsert_service("100.64.0.1", 0, "bad", "nas")


class TestBulkUpsert:
    def test_writes_hosts_and_services(self, store):
        counts = store.bulk_upsert([
            ("100.64.0.1", "nas", {8080: "dashboard", 22: "ssh"}),
            ("100.64.0.2", "pi", {}),
        ])
        assert counts == (2, 2)
        assert store.get_service("100.64.0.1", 22).owning_host_name == "nas"
        assert store.snapshot().hosts["100.64.0.2"].ports == {}

    def test_failure_writes_nothing(self, store):
        with pytest.raises(StoreError):
            store.bulk_upsert([
                ("100.64.0.1", "nas", {22: "ssh"}),
                ("100.64.0.2", "pi", {0: "bad"}),
            ])
        assert store.list_hosts() == []
        assert store.list_services() == []


class TestCascade:
    def test_delete_host_removes_services(self, store):
        for port in (22, 80, 8080):
            store.upsert_service("100.64.0.1", port, f"svc-{port}", "nas")
        store.upsert_service("100.64.0.2", 22, "ssh", "pi")

        assert store.delete_host("100.64.0.1") is True
        remaining = store.list_services()
        assert [(s.address, s.port) for s in remaining] == [("100.64.0.2", 22)]
        assert store.get_host("100.64.0.1") is None

    def test_readers_never_see_partial_cascade(self, tmp_path):
        path = tmp_path / "cascade.db"
        writer = RegistryStore.open(path)
        ports = {port: "svc" for port in range(1000, 1020)}
        stop = threading.Event()
        seen: list[tuple[int, int, int]] = []
        errors: list[BaseException] = []

        def reader():
            # Own connection, one statement per read: sees only committed states
            conn = sqlite3.connect(str(path))
            try:
                while True:
                    seen.append(conn.execute(
                        """
                        SELECT
                            (SELECT count(*) FROM hosts WHERE address = ?),
                            (SELECT count(*) FROM services WHERE address = ?),
                            (SELECT count(*) FROM services s
                              WHERE NOT EXISTS (SELECT 1 FROM hosts h WHERE h.address = s.address))
                        """,
                        ("100.64.0.1", "100.64.0.1"),
                    ).fetchone())
                    if stop.is_set():
                        break
            except BaseException as exc:
                errors.append(exc)
            finally:
                conn.close()

        t = threading.Thread(target=reader)
        t.start()
        try:
            for _ in range(50):
                writer.bulk_upsert([("100.64.0.1", "nas", ports)])
                writer.delete_host("100.64.0.1")
        finally:
            stop.set()
            t.join()

        assert errors == []
        assert seen
        # Either the host with every service, or neither; never an orphan
        assert set(seen) <= {(0, 0, 0), (1, len(ports), 0)}
        assert writer.list_services() == []
        writer.close()

    def test_snapshot_consistent_with_raw_rows(self, store):
        store.upsert_service("100.64.0.1", 80, "web", "nas")
        store.delete_host("100.64.0.1")
        snap = store.snapshot()
        assert "100.64.0.1" not in snap.hosts
        assert store.get_service("100.64.0.1", 80) is None


class TestOrdering:
    def test_hosts_ordered_by_name_then_address(self, store):
        store.upsert_host("zeta", "100.64.0.1")
        store.upsert_host("alpha", "100.64.0.9")
        store.upsert_host("alpha", "100.64.0.3")
        assert [h.address for h in store.list_hosts()] == [
            "100.64.0.3",
            "100.64.0.9",
            "100.64.0.1",
        ]

    def test_services_ordered_by_host_name_address_port(self, store):
        store.upsert_service("100.64.0.2", 443, "https", "beta")
        store.upsert_service("100.64.0.2", 22, "ssh", "beta")
        store.upsert_service("100.64.0.1", 9000, "minio", "alpha")
        assert [(s.address, s.port) for s in store.list_services()] == [
            ("100.64.0.1", 9000),
            ("100.64.0.2", 22),
            ("100.64.0.2", 443),
        ]


class TestSnapshot:
    def test_empty(self, store):
        assert store.snapshot().to_dict() == {"tailnet_hosts": {}}

    def test_includes_hosts_without_services(self, store):
        store.upsert_host("empty", "100.64.0.5")
        store.upsert_service("100.64.0.1", 8080, "dashboard", "nas")
        data = store.snapshot().to_dict()
        assert data == {
            "tailnet_hosts": {
                "100.64.0.5": {"name": "empty", "ports": {}},
                "100.64.0.1": {"name": "nas", "ports": {"8080": "dashboard"}},
            }
        }

    def test_endpoints(self, store):
        store.upsert_service("100.64.0.1", 80, "web", "nas")
        store.upsert_service("100.64.0.1", 22, "ssh", "nas")
        store.upsert_host("empty", "100.64.0.5")
        assert store.snapshot().endpoints() == {
            Endpoint("100.64.0.1", 80),
            Endpoint("100.64.0.1", 22),
        }


class TestStorageFaults:
    def test_closed_connection_raises_store_error(self, tmp_path):
        s = RegistryStore.open(tmp_path / "test.db")
        s.close()
        with pytest.raises(StoreError):
            s.list_hosts()
        with pytest.raises(StoreError):
            s.upsert_host("nas", "100.64.0.1")

    def test_open_unwritable_path(self, tmp_path):
        target = tmp_path / "not-a-dir"
        target.write_text("x")
        with pytest.raises(StoreError):
            RegistryStore.open(target / "test.db")

    def test_schema_is_idempotent(self, tmp_path):
        path = tmp_path / "test.db"
        RegistryStore.open(path).close()
        s = RegistryStore.open(path)
        s.upsert_host("nas", "100.64.0.1")
        s.close()
        conn = sqlite3.connect(str(path))
        assert conn.execute("SELECT count(*) FROM hosts").fetchone()[0] == 1
        conn.close()
