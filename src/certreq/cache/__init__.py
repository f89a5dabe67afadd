"""In-memory listers serving issuers, secrets and requests."""

from certreq.cache.lister import Lister, cluster_key, namespaced_key

__all__ = ["Lister", "cluster_key", "namespaced_key"]
