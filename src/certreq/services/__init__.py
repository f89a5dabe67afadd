"""Signing pipeline services.

- :mod:`~certreq.services.issuer_resolver` -- issuer lookup
- :mod:`~certreq.services.csr_validator` -- CSR decoding
- :mod:`~certreq.services.outcome` -- error-to-outcome policy table
- :mod:`~certreq.services.signer` -- the per-request orchestrator

Import from the submodules directly; this package does not re-export.
"""
