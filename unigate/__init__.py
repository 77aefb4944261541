"""
Unigate - unified OpenAI-compatible gateway.

Exposes one OpenAI-compatible API and fans requests out to multiple
upstream providers, selecting the provider per request by model name.
"""

__version__ = "1.0.0"
