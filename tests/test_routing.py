"""Tests for catalog snapshots and the routing engine."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from unigate.gateway.routing import ModelCatalog, ModelNotFoundError, RoutingEngine
from unigate.gateway.services import ModelDiscoveryService
from unigate.models.gateway import ModelEntry, UpstreamProvider

from tests.conftest import model_list


P1 = UpstreamProvider(name="p1", base_url="http://p1.test/v1", api_key="", priority=1)
P2 = UpstreamProvider(name="p2", base_url="http://p2.test/v1", api_key="", priority=2)


def catalog_of(mapping, generation=1):
    return ModelCatalog.merge(
        [[ModelEntry.from_static(model_id, provider, 0)] for model_id, provider in mapping.items()],
        generation=generation,
    )


class TestModelCatalog:
    """Tests for ModelCatalog."""

    def test_resolve(self):
        catalog = catalog_of({"m1": P1, "m2": P2})

        assert catalog.resolve("m1") is P1
        assert catalog.resolve("m2") is P2

    def test_resolve_unknown_model(self):
        catalog = catalog_of({"m1": P1, "m2": P2})

        with pytest.raises(ModelNotFoundError) as exc_info:
            catalog.resolve("m3")

        assert exc_info.value.model == "m3"
        assert "m3" in str(exc_info.value)

    def test_resolve_is_case_sensitive(self):
        catalog = catalog_of({"GPT-4o": P1})

        with pytest.raises(ModelNotFoundError):
            catalog.resolve("gpt-4o")

    def test_merge_first_wins(self):
        catalog = ModelCatalog.merge([
            [ModelEntry.from_upstream({"id": "x", "owned_by": "first"}, P1)],
            [ModelEntry.from_upstream({"id": "x", "owned_by": "second"}, P2),
             ModelEntry.from_upstream({"id": "y", "owned_by": "second"}, P2)],
        ])

        assert len(catalog) == 2
        assert catalog.get("x").to_dict() == {"id": "x", "owned_by": "first"}
        assert catalog.resolve("y") is P2

    def test_openai_list_order(self):
        catalog = ModelCatalog.merge([
            [ModelEntry.from_upstream({"id": "b"}, P1), ModelEntry.from_upstream({"id": "a"}, P1)],
            [ModelEntry.from_upstream({"id": "c"}, P2)],
        ])

        assert catalog.to_openai_list() == {
            "object": "list",
            "data": [{"id": "b"}, {"id": "a"}, {"id": "c"}],
        }

    def test_empty(self):
        catalog = ModelCatalog.empty()

        assert len(catalog) == 0
        assert catalog.generation == 0
        assert "m1" not in catalog

    def test_snapshot_is_read_only(self):
        catalog = catalog_of({"m1": P1})

        with pytest.raises(TypeError):
            catalog.routing_table["m2"] = P2
        with pytest.raises(TypeError):
            catalog.get("m1").raw_metadata["id"] = "other"


class TestRoutingEngine:
    """Tests for RoutingEngine refresh and snapshot swap."""

    def make_engine(self, *catalogs):
        discovery = MagicMock(spec=ModelDiscoveryService)
        discovery.build_catalog = AsyncMock(side_effect=list(catalogs))
        return RoutingEngine([P1, P2], discovery), discovery

    @pytest.mark.asyncio
    async def test_starts_empty(self):
        engine, _ = self.make_engine()

        assert len(engine.catalog) == 0
        with pytest.raises(ModelNotFoundError):
            engine.resolve("m1")

    @pytest.mark.asyncio
    async def test_refresh_publishes_new_snapshot(self):
        first = catalog_of({"m1": P1}, generation=1)
        second = catalog_of({"m2": P2}, generation=2)
        engine, _ = self.make_engine(first, second)

        assert await engine.refresh() is first
        assert engine.catalog is first
        assert engine.resolve("m1") is P1

        held = engine.catalog
        await engine.refresh()

        assert engine.catalog is second
        assert held.resolve("m1") is P1
        assert "m2" not in held

    @pytest.mark.asyncio
    async def test_refresh_increments_generation(self):
        engine, discovery = self.make_engine(catalog_of({}, 1), catalog_of({}, 2))

        await engine.refresh()
        await engine.refresh()

        generations = [call.kwargs["generation"] for call in discovery.build_catalog.await_args_list]
        assert generations == [1, 2]

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous_catalog(self):
        first = catalog_of({"m1": P1}, generation=1)
        engine, _ = self.make_engine(first, RuntimeError("boom"))

        await engine.refresh()
        result = await engine.refresh()

        assert result is first
        assert engine.catalog is first

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_are_serialized(self):
        active = 0
        overlap = False

        async def slow_build(providers, generation):
            nonlocal active, overlap
            active += 1
            overlap = overlap or active > 1
            await asyncio.sleep(0.01)
            active -= 1
            return catalog_of({"m1": P1}, generation=generation)

        discovery = MagicMock(spec=ModelDiscoveryService)
        discovery.build_catalog = AsyncMock(side_effect=slow_build)
        engine = RoutingEngine([P1], discovery)

        await asyncio.gather(engine.refresh(), engine.refresh(), engine.refresh())

        assert overlap is False
        assert engine.catalog.generation == 3

    @pytest.mark.asyncio
    async def test_refresh_against_providers(self, upstreams):
        upstreams.json("GET", P1.models_url, model_list("m1"))
        upstreams.json("GET", P2.models_url, model_list("m1", "m2"))

        async with upstreams.client() as client:
            engine = RoutingEngine([P1, P2], ModelDiscoveryService(client))
            catalog = await engine.refresh()

        assert catalog.generation == 1
        assert engine.resolve("m1") is P1
        assert engine.resolve("m2") is P2

    @pytest.mark.asyncio
    async def test_periodic_refresh_until_cancelled(self):
        discovery = MagicMock(spec=ModelDiscoveryService)
        discovery.build_catalog = AsyncMock(
            side_effect=lambda providers, generation: catalog_of({}, generation)
        )
        engine = RoutingEngine([P1], discovery)

        task = asyncio.create_task(engine.run_periodic_refresh(0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert discovery.build_catalog.await_count >= 2

    def test_describe(self):
        engine = RoutingEngine([P1, P2], MagicMock(spec=ModelDiscoveryService))

        assert engine.describe() == [
            {"name": "p1", "base_url": "http://p1.test/v1", "priority": 1, "discovery": True},
            {"name": "p2", "base_url": "http://p2.test/v1", "priority": 2, "discovery": True},
        ]
