"""certreq: Vault-backed signer for certificate requests."""

__version__ = "0.1.0"
