"""
Model Discovery Service.

Builds the unified model catalog from the configured providers:
- Providers with a static model list contribute synthesized entries
  without any network access
- Other providers are queried concurrently on their /models endpoint,
  each call bounded by its own timeout
- A provider whose discovery fails contributes no models; it never
  aborts the build for the other providers
- Results are merged in priority order, first provider wins per model id
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Sequence

import httpx
import structlog

from unigate.gateway.routing.engine import ModelCatalog
from unigate.models.gateway import ModelEntry, UpstreamProvider

logger = structlog.get_logger(__name__)


class DiscoveryError(Exception):
    """Raised when a provider's model list cannot be fetched or parsed."""

    def __init__(self, provider: UpstreamProvider, reason: str):
        super().__init__(f"{provider.name}: {reason}")
        self.provider = provider
        self.reason = reason


class ModelDiscoveryService:
    """
    Catalog builder.

    Usage:
        service = ModelDiscoveryService(client, timeout_ms=10000)
        catalog = await service.build_catalog(providers)
    """

    def __init__(self, client: httpx.AsyncClient, timeout_ms: int = 10000):
        self.client = client
        self.timeout = httpx.Timeout(timeout_ms / 1000)

    async def build_catalog(
        self,
        providers: Sequence[UpstreamProvider],
        generation: int = 1
    ) -> ModelCatalog:
        """
        Build a catalog snapshot from all providers.

        Never raises for provider failures: if every provider fails the
        result is an empty catalog.
        """
        created = int(time.time())

        results = await asyncio.gather(
            *(self.collect_entries(provider, created) for provider in providers),
            return_exceptions=True
        )

        provider_entries: List[List[ModelEntry]] = []
        for provider, result in zip(providers, results):
            if isinstance(result, Exception):
                logger.error(
                    "Unexpected error collecting models",
                    provider=provider.name,
                    error=str(result),
                    exc_info=result,
                )
                result = []
            elif isinstance(result, BaseException):
                raise result
            provider_entries.append(result)

        catalog = ModelCatalog.merge(provider_entries, generation=generation)

        logger.info(
            "Model catalog built",
            generation=generation,
            providers=len(providers),
            models=len(catalog),
        )
        return catalog

    async def collect_entries(
        self,
        provider: UpstreamProvider,
        created: int
    ) -> List[ModelEntry]:
        """Model entries of one provider; empty on discovery failure."""
        if not provider.uses_discovery:
            logger.info(
                "Using static models configuration",
                provider=provider.name,
                models=len(provider.static_models),
            )
            return [
                ModelEntry.from_static(model_id, provider, created)
                for model_id in provider.static_models
            ]

        try:
            records = await self.fetch_models(provider)
        except DiscoveryError as e:
            logger.warning(
                "Model discovery failed",
                provider=provider.name,
                base_url=provider.base_url,
                reason=e.reason,
            )
            return []

        logger.info("Discovered models", provider=provider.name, models=len(records))
        return [ModelEntry.from_upstream(record, provider) for record in records]

    async def fetch_models(self, provider: UpstreamProvider) -> List[Dict[str, Any]]:
        """
        Query a provider's /models endpoint.

        Returns:
            Raw model records that carry a string `id`, in upstream order

        Raises:
            DiscoveryError: On timeout, connection error, non-success status
                or a body that is not an OpenAI model list
        """
        try:
            response = await self.client.get(
                provider.models_url,
                headers=provider.auth_headers(),
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise DiscoveryError(provider, f"timeout: {type(e).__name__}") from e
        except httpx.HTTPError as e:
            raise DiscoveryError(provider, f"connection error: {e}") from e

        if not response.is_success:
            raise DiscoveryError(provider, f"HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise DiscoveryError(provider, f"malformed JSON body: {e}") from e

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list):
            raise DiscoveryError(provider, "response has no 'data' list")

        return self._extract_records(data, provider)

    def _extract_records(
        self,
        data: List[Any],
        provider: UpstreamProvider
    ) -> List[Dict[str, Any]]:
        records = []
        skipped = 0
        for record in data:
            model_id: Optional[Any] = record.get("id") if isinstance(record, dict) else None
            if not isinstance(model_id, str) or not model_id:
                skipped += 1
                continue
            records.append(record)

        if skipped:
            logger.warning("Skipped model records without id", provider=provider.name, skipped=skipped)
        return records
