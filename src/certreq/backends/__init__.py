"""Signing backends.

Exports the abstract base class and the Vault client factory.
"""

from certreq.backends.base import BackendFactory, SigningBackend
from certreq.backends.vault import VaultClient, new_client

__all__ = [
    "BackendFactory",
    "SigningBackend",
    "VaultClient",
    "new_client",
]
