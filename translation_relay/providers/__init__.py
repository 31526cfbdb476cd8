"""
Translation providers for Translation Relay.

Provides the gateway to the metered and unmetered translation backends.
"""

from .gateway import ProviderGateway

__all__ = ["ProviderGateway"]
