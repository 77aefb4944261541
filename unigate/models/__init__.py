# Gateway value types
from unigate.models.gateway import ModelEntry, UpstreamProvider, build_providers

__all__ = [
    "ModelEntry",
    "UpstreamProvider",
    "build_providers",
]
