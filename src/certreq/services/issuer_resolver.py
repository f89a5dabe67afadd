"""Issuer resolution.

An :class:`IssuerRef` names either a namespaced ``Issuer`` or a
cluster-scoped ``ClusterIssuer``.  The kind is mapped once to an
:class:`IssuerScope` tag and :meth:`IssuerResolver.resolve` dispatches
on that tag to the matching lister.

Not-found is reported as :class:`NotFoundError`; every other failure
(unknown kind, a lister blowing up) becomes :class:`TransientLookupError`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from certreq.core.errors import NotFoundError, TransientLookupError
from certreq.core.types import CLUSTER_ISSUER_KIND, ISSUER_KIND, IssuerScope

if TYPE_CHECKING:
    from certreq.cache.lister import Lister
    from certreq.models.issuer import Issuer
    from certreq.models.request import IssuerRef

log = logging.getLogger(__name__)

_KIND_SCOPES: dict[str, IssuerScope] = {
    "": IssuerScope.NAMESPACED,
    ISSUER_KIND: IssuerScope.NAMESPACED,
    CLUSTER_ISSUER_KIND: IssuerScope.CLUSTER,
}


def scope_for_kind(kind: str) -> IssuerScope:
    """Map an issuerRef kind to its scope.

    Raises
    ------
    TransientLookupError
        If *kind* is not a known issuer kind.

    """
    scope = _KIND_SCOPES.get(kind)
    if scope is None:
        msg = (
            f'invalid value "{kind}" for issuerRef.kind. '
            f'Must be empty, "{ISSUER_KIND}" or "{CLUSTER_ISSUER_KIND}"'
        )
        raise TransientLookupError(msg)
    return scope


class IssuerResolver:
    """Look up the issuer a request refers to.

    Parameters
    ----------
    issuers:
        Lister of namespaced ``Issuer`` objects.
    cluster_issuers:
        Lister of cluster-scoped ``ClusterIssuer`` objects.

    """

    def __init__(self, issuers: Lister[Issuer], cluster_issuers: Lister[Issuer]) -> None:
        self._listers = {
            IssuerScope.NAMESPACED: issuers,
            IssuerScope.CLUSTER: cluster_issuers,
        }

    def resolve(self, ref: IssuerRef, namespace: str) -> Issuer:
        """Return the issuer named by *ref*.

        *namespace* scopes namespaced kinds and is ignored for cluster
        issuers.
        """
        scope = scope_for_kind(ref.kind)
        lookup_ns = namespace if scope == IssuerScope.NAMESPACED else None
        try:
            return self._listers[scope].get(lookup_ns, ref.name)
        except (NotFoundError, TransientLookupError):
            raise
        except Exception as exc:
            msg = f"error getting {ref.display_kind} {ref.name!r}: {exc}"
            raise TransientLookupError(msg) from exc
