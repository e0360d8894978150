"""
Base resource syncer interface and common functionality.

This module defines the abstract base classes that every resource type syncer
implements, the mutation error taxonomy, and the helpers shared by the
entitlement and grant derivations.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

from splunk_sync.client import SplunkClient
from splunk_sync.config import DEFAULT_PAGE_SIZE
from splunk_sync.pagination import Bag, PageState, decode
from splunk_sync.resources import (
    Entitlement, Grant, MappingError, Resource, ResourceId, ResourceType,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

WILDCARD_ROLE = '*'

# (items, next continuation token, annotations)
Page = Tuple[List[T], str, Dict[str, Any]]


class MutationError(Exception):
    """Base exception for rejected grant/revoke requests."""
    pass


class WrongPrincipalTypeError(MutationError):
    """Raised when the principal kind cannot hold the entitlement."""
    pass


class AlreadyGrantedError(MutationError):
    """Raised when granting an entitlement the principal already holds."""
    pass


class NotGrantedError(MutationError):
    """Raised when revoking an entitlement the principal does not hold."""
    pass


class UnsupportedEntitlementError(MutationError):
    """Raised when an entitlement cannot be granted or revoked at all."""
    pass


def contains_role(acl_roles: Iterable[str], role: str) -> bool:
    """Check whether ``role`` is listed in an ACL role list ('*' matches every role)."""
    for acl_role in acl_roles:
        if acl_role == WILDCARD_ROLE or acl_role == role:
            return True
    return False


def is_present(values: List[str], value: str) -> bool:
    return value in values


def remove_first(values: List[str], value: str) -> List[str]:
    """Return a copy of ``values`` without the first occurrence of ``value``."""
    result = list(values)
    result.remove(value)
    return result


class ResourceSyncer(ABC):
    """
    Abstract base class for resource type syncers.

    A syncer lists the resources of one type and derives their entitlements
    and grants. Every operation takes and returns an opaque continuation
    token; '' in means "first page" and '' out means "no more pages".
    """

    resource_type_def: ResourceType = None

    def __init__(self, client: SplunkClient, page_size: int = DEFAULT_PAGE_SIZE, hierarchical: bool = True):
        """
        Initialize syncer.

        Args:
            client: Splunk client; per-deployment handles are derived from it
            page_size: Number of records requested per backend page
            hierarchical: Whether resources of this type are scoped under a deployment
        """
        self.client = client
        self.page_size = page_size
        self.hierarchical = hierarchical
        self._tenant_clients: Dict[str, SplunkClient] = {}

    def resource_type(self) -> ResourceType:
        return self.resource_type_def

    def tenant(self, deployment: Optional[str]) -> SplunkClient:
        """Return the client handle for ``deployment`` (the default deployment when None)."""
        deployment = deployment or self.client.default_deployment
        handle = self._tenant_clients.get(deployment)
        if handle is None:
            handle = self.client.for_tenant(deployment)
            self._tenant_clients[deployment] = handle
        return handle

    def should_list(self, parent_id: Optional[ResourceId]) -> bool:
        """
        Decide whether a List call for ``parent_id`` produces anything.

        Hierarchical types are listed once per parent deployment; flat types
        only at the root.
        """
        if self.hierarchical:
            return parent_id is not None
        return parent_id is None

    def parse_token(self, token: str, resource_type_id: str, resource_id: str = '') -> Bag:
        return decode(token, PageState(resource_type_id, resource_id))

    def build_resources(self, records: Iterable[T], builder: Callable[..., Resource],
                        parent_id: Optional[ResourceId]) -> List[Resource]:
        """
        Map backend records to resources, skipping records that cannot be mapped.

        A skipped record is logged and left out of both List and Grants
        results, so no grant can point at it.
        """
        resources = []
        for record in records:
            try:
                resources.append(builder(record, parent_id))
            except MappingError as e:
                logger.warning(f"Skipping {self.resource_type_def.id} record: {e}")
        return resources

    def close(self):
        for handle in self._tenant_clients.values():
            handle.close_connection()
        self._tenant_clients.clear()

    @abstractmethod
    def list(self, parent_id: Optional[ResourceId], token: str = '') -> Page[Resource]:
        """
        List one page of resources.

        Args:
            parent_id: Parent deployment id, or None at the root
            token: Continuation token from the previous call

        Returns:
            Tuple of (resources, next token, annotations)
        """
        pass

    @abstractmethod
    def entitlements(self, resource: Resource, token: str = '') -> Page[Entitlement]:
        pass

    @abstractmethod
    def grants(self, resource: Resource, token: str = '') -> Page[Grant]:
        pass


class ResourceProvisioner(ABC):
    """Interface for syncers whose entitlements can be granted and revoked."""

    @abstractmethod
    def grant(self, principal: Resource, entitlement: Entitlement) -> Dict[str, Any]:
        """
        Grant ``entitlement`` to ``principal``.

        Returns:
            Annotations describing side effects (empty when there are none)
        """
        pass

    @abstractmethod
    def revoke(self, grant: Grant) -> Dict[str, Any]:
        pass

    @abstractmethod
    def entitlement_for(self, resource: Resource, slug: str) -> Entitlement:
        """Rebuild the entitlement ``slug`` of ``resource`` from ids alone."""
        pass
