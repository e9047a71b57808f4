"""
Tests for the service registry and store factory wiring.
"""
import asyncio
from unittest.mock import MagicMock

import pytest

from domains.core import (
    ConfigurationError,
    ServiceRegistry,
    get_service_registry,
    register_core_services,
    reset_service_registry,
)
from domains.link_hub.core import MemoryLinkStore, PostgresLinkStore, create_link_store
from domains.link_hub.services import LinkService


@pytest.fixture
def clean_registry():
    reset_service_registry()
    yield get_service_registry()
    reset_service_registry()


class TestServiceRegistry:

    def test_lazy_creation_with_dependencies(self):
        registry = ServiceRegistry()
        created = []
        registry.register("a", lambda: created.append("a") or "A")
        registry.register("b", lambda: created.append("b") or "B", dependencies=["a"])

        assert created == []
        assert registry.get("b") == "B"
        assert created == ["a", "b"]
        assert registry.initialized_services == ["a", "b"]

    def test_unknown_service(self):
        with pytest.raises(KeyError):
            ServiceRegistry().get("missing")

    def test_shutdown_closes_in_reverse_order(self):
        registry = ServiceRegistry()
        closed = []
        first, second = MagicMock(), MagicMock()
        first.close.side_effect = lambda: closed.append("first")
        second.close.side_effect = lambda: closed.append("second")
        registry.register("first", lambda: first)
        registry.register("second", lambda: second, dependencies=["first"])
        registry.get("second")

        asyncio.run(registry.shutdown())

        assert closed == ["second", "first"]
        assert registry.initialized_services == []

    def test_dependency_cycle(self):
        registry = ServiceRegistry()
        registry.register("a", lambda: "A", dependencies=["b"])
        registry.register("b", lambda: "B", dependencies=["a"])

        with pytest.raises(ConfigurationError) as exc_info:
            registry.get("a")
        assert "a -> b -> a" in exc_info.value.message

    def test_reset_recreates_on_next_get(self):
        registry = ServiceRegistry()
        instances = iter([MagicMock(), MagicMock()])
        registry.register("store", lambda: next(instances))
        first = registry.get("store")

        registry.reset("store")

        first.close.assert_called_once()
        assert registry.get("store") is not first

    def test_set_overrides_instance(self):
        registry = ServiceRegistry()
        registry.register("store", lambda: "real")
        registry.set("store", "fake")
        assert registry.get("store") == "fake"


class TestCoreServices:

    def test_register_core_services_builds_link_service(self, clean_registry):
        registry = register_core_services()
        service = registry.get("link_service")

        assert isinstance(service, LinkService)
        assert isinstance(service.store, MemoryLinkStore)
        assert registry.initialized_services == ["link_store", "summary_provider", "link_service"]
        assert sorted(registry.registered_services) == ["link_service", "link_store", "summary_provider"]

    def test_existing_overrides_are_kept(self, clean_registry):
        store = MemoryLinkStore()
        clean_registry.set("link_store", store)

        service = register_core_services().get("link_service")

        assert service.store is store


class TestStoreFactory:

    def test_backends(self):
        assert isinstance(create_link_store("memory"), MemoryLinkStore)
        assert isinstance(create_link_store("postgres", "postgresql://x@localhost/x"), PostgresLinkStore)

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError) as exc_info:
            create_link_store("sqlite")
        assert exc_info.value.http_status_code == 500
