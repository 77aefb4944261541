"""
Gateway Services Package.

- ModelDiscoveryService: builds the model catalog from the providers
"""

from unigate.gateway.services.discovery import DiscoveryError, ModelDiscoveryService

__all__ = [
    "DiscoveryError",
    "ModelDiscoveryService",
]
