"""
AI Gateway Models.

This module contains the in-memory value types of the gateway:
- UpstreamProvider: Immutable upstream provider descriptor
- ModelEntry: One model of the unified catalog, owned by a provider

Reference documentation:
- OpenAI API: https://platform.openai.com/docs/api-reference/models
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from unigate.core.config import ProviderConfig


@dataclass(frozen=True)
class UpstreamProvider:
    """
    An upstream OpenAI-compatible provider.

    Built once from configuration at startup and never mutated afterwards.
    Priority is the 1-based position in the configured provider list;
    a lower number wins when two providers serve the same model id.
    """

    name: str
    base_url: str
    api_key: str
    priority: int
    static_models: Optional[Tuple[str, ...]] = None

    @classmethod
    def from_config(cls, config: ProviderConfig, priority: int) -> "UpstreamProvider":
        return cls(
            name=config.display_name,
            base_url=config.base_url.rstrip("/"),
            api_key=config.api_key,
            priority=priority,
            static_models=tuple(config.models) if config.models is not None else None,
        )

    @property
    def uses_discovery(self) -> bool:
        """Providers without a static model list are queried for their models."""
        return self.static_models is None

    @property
    def models_url(self) -> str:
        return f"{self.base_url}/models"

    @property
    def chat_completions_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def auth_headers(self) -> Dict[str, str]:
        """Authorization header for upstream calls; empty when no api_key is set."""
        if not self.api_key:
            return {}
        return {"Authorization": f"Bearer {self.api_key}"}

    def __repr__(self) -> str:
        # Keep credentials out of logs and tracebacks
        return (
            f"UpstreamProvider(name={self.name!r}, base_url={self.base_url!r}, "
            f"priority={self.priority})"
        )


@dataclass(frozen=True)
class ModelEntry:
    """A model in the unified catalog."""

    id: str
    raw_metadata: Mapping[str, Any]
    provider: UpstreamProvider

    @classmethod
    def from_upstream(cls, record: Dict[str, Any], provider: UpstreamProvider) -> "ModelEntry":
        """Wrap a discovered model record, keeping every field verbatim."""
        return cls(
            id=record["id"],
            raw_metadata=MappingProxyType(dict(record)),
            provider=provider,
        )

    @classmethod
    def from_static(cls, model_id: str, provider: UpstreamProvider, created: int) -> "ModelEntry":
        """Synthesize metadata for a model listed statically in configuration."""
        return cls(
            id=model_id,
            raw_metadata=MappingProxyType({
                "id": model_id,
                "object": "model",
                "created": created,
                "owned_by": provider.name,
            }),
            provider=provider,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Metadata as served by /v1/models."""
        return dict(self.raw_metadata)


def build_providers(configs: List[ProviderConfig]) -> Tuple[UpstreamProvider, ...]:
    """Turn configured provider entries into descriptors, priority = position."""
    return tuple(
        UpstreamProvider.from_config(config, priority)
        for priority, config in enumerate(configs, start=1)
    )
