"""
Gateway Routing Engine.

This module implements the model registry and routing table:
- ModelCatalog: immutable snapshot of the unified model list, keyed by
  model id, which doubles as the routing table (model id -> provider)
- RoutingEngine: holds the current snapshot and publishes rebuilt ones
  with a single reference swap

Readers take the current snapshot once per request and never lock.
Rebuilds are serialized and only become visible once complete.
"""

import asyncio
import time
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

import structlog

from unigate.models.gateway import ModelEntry, UpstreamProvider

if TYPE_CHECKING:
    from unigate.gateway.services.discovery import ModelDiscoveryService

logger = structlog.get_logger(__name__)


class ModelNotFoundError(Exception):
    """Raised when no provider serves the requested model."""

    def __init__(self, model: str):
        super().__init__(f"Model '{model}' not found")
        self.model = model


class ModelCatalog:
    """
    Unified, deduplicated, priority-resolved model catalog.

    Iteration order is discovery order: providers in priority order,
    each provider's models in the order it reported them.
    """

    def __init__(
        self,
        entries: Mapping[str, ModelEntry],
        generation: int = 0,
        built_at: Optional[float] = None
    ):
        self._entries = MappingProxyType(dict(entries))
        self.generation = generation
        self.built_at = built_at if built_at is not None else time.time()

    @classmethod
    def empty(cls) -> "ModelCatalog":
        return cls({}, generation=0)

    @classmethod
    def merge(
        cls,
        provider_entries: Iterable[Iterable[ModelEntry]],
        generation: int = 0
    ) -> "ModelCatalog":
        """
        Merge per-provider entry lists, given in priority order.

        The first entry seen for an id wins; later duplicates are dropped
        together with their metadata.
        """
        entries: Dict[str, ModelEntry] = {}
        for batch in provider_entries:
            for entry in batch:
                if entry.id not in entries:
                    entries[entry.id] = entry
        return cls(entries, generation=generation)

    def resolve(self, model: str) -> UpstreamProvider:
        """
        Look up the provider serving a model.

        Raises:
            ModelNotFoundError: If no provider serves the model
        """
        entry = self._entries.get(model)
        if entry is None:
            raise ModelNotFoundError(model)
        return entry.provider

    def get(self, model: str) -> Optional[ModelEntry]:
        return self._entries.get(model)

    @property
    def routing_table(self) -> Mapping[str, UpstreamProvider]:
        return MappingProxyType({model_id: e.provider for model_id, e in self._entries.items()})

    def to_openai_list(self) -> Dict[str, Any]:
        """OpenAI-compatible /v1/models response body."""
        return {
            "object": "list",
            "data": [entry.to_dict() for entry in self._entries.values()],
        }

    def __contains__(self, model: object) -> bool:
        return model in self._entries

    def __iter__(self) -> Iterator[ModelEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


class RoutingEngine:
    """
    Holder of the current catalog snapshot.

    Usage:
        engine = RoutingEngine(providers, discovery_service)
        await engine.refresh()
        provider = engine.resolve("gpt-4o")
    """

    def __init__(
        self,
        providers: Sequence[UpstreamProvider],
        discovery: "ModelDiscoveryService"
    ):
        self.providers = tuple(providers)
        self.discovery = discovery
        self._catalog = ModelCatalog.empty()
        self._refresh_lock = asyncio.Lock()

    @property
    def catalog(self) -> ModelCatalog:
        """Current snapshot. Take it once and use it for the whole request."""
        return self._catalog

    def resolve(self, model: str) -> UpstreamProvider:
        return self._catalog.resolve(model)

    async def refresh(self) -> ModelCatalog:
        """
        Rebuild the catalog and publish it atomically.

        Concurrent refreshes are serialized. If the rebuild fails
        unexpectedly the previous snapshot stays in place.
        """
        async with self._refresh_lock:
            generation = self._catalog.generation + 1
            try:
                catalog = await self.discovery.build_catalog(self.providers, generation=generation)
            except Exception as e:
                logger.error(
                    "Catalog refresh failed, keeping previous catalog",
                    generation=self._catalog.generation,
                    error=str(e),
                    exc_info=e,
                )
                return self._catalog

            self._catalog = catalog
            return catalog

    async def run_periodic_refresh(self, interval_seconds: float) -> None:
        """Refresh forever at a fixed interval. Cancel the task to stop."""
        logger.info("Periodic catalog refresh enabled", interval_seconds=interval_seconds)
        while True:
            await asyncio.sleep(interval_seconds)
            previous = len(self._catalog)
            catalog = await self.refresh()
            logger.info(
                "Periodic catalog refresh completed",
                generation=catalog.generation,
                models=len(catalog),
                previous_models=previous,
            )

    def describe(self) -> List[Dict[str, Any]]:
        """Provider summary for logs and the health endpoint."""
        return [
            {
                "name": p.name,
                "base_url": p.base_url,
                "priority": p.priority,
                "discovery": p.uses_discovery,
            }
            for p in self.providers
        ]
