"""
Splunk connector: the set of resource syncers for one sync target.

The connector wires one Splunk client into the deployment, user, role and
application syncers, validates credentials against every deployment, and
resolves id-based grant/revoke requests to the syncer owning the entitlement.
"""

import logging
from typing import Any, Dict, List, Optional

from splunk_sync.client import AuthenticationError, SplunkClient
from splunk_sync.config import DEFAULT_PAGE_SIZE
from splunk_sync.logging_setup import security_logger
from splunk_sync.resources import (
    RESOURCE_TYPE_DEPLOYMENT, RESOURCE_TYPE_ROLE, RESOURCE_TYPE_USER,
    DeploymentProfile, Grant, MappingError, Resource, ResourceId,
    RoleProfile, UserProfile, parse_entitlement_id, title_case,
)
from splunk_sync.syncers import (
    ApplicationSyncer, DeploymentSyncer, ResourceProvisioner, ResourceSyncer, RoleSyncer,
    UnsupportedEntitlementError, UserSyncer,
)

logger = logging.getLogger(__name__)


class UnauthenticatedError(Exception):
    """Raised when the configured credentials are rejected by a deployment."""

    def __init__(self, message: str, deployment: str):
        super().__init__(message)
        self.deployment = deployment


def reference_resource(resource_type_id: str, resource_id: str, deployment: str) -> Resource:
    """
    Build a resource from its id alone, for addressing grant/revoke requests.

    The profile carries only what the id implies; Splunk role ids are the
    role names users reference.
    """
    if resource_type_id == RESOURCE_TYPE_DEPLOYMENT.id:
        return Resource(
            id=ResourceId(resource_type_id, resource_id),
            display_name=title_case(resource_id),
            profile=DeploymentProfile(deployment=resource_id),
        )

    parent_id = ResourceId(RESOURCE_TYPE_DEPLOYMENT.id, deployment)

    if resource_type_id == RESOURCE_TYPE_ROLE.id:
        profile = RoleProfile(role_id=resource_id, role_name=resource_id)
    elif resource_type_id == RESOURCE_TYPE_USER.id:
        profile = UserProfile(user_id=resource_id, user_name=resource_id)
    else:
        raise MappingError(f"Resources of type '{resource_type_id}' cannot take part in grants")

    return Resource(
        id=ResourceId(resource_type_id, resource_id),
        display_name=title_case(resource_id),
        profile=profile,
        parent_resource_id=parent_id,
    )


class Connector:
    """
    Connector syncing Splunk users, their roles, applications and capabilities.

    Args:
        config: Full application configuration (``splunk`` and ``sync`` sections are used)
        client: Pre-built client, mainly for tests; built from config when None
    """

    def __init__(self, config: Dict[str, Any], client: Optional[SplunkClient] = None):
        splunk_config = config['splunk']
        sync_config = config.get('sync', {})

        self.deployments: List[str] = list(splunk_config['deployments'])
        self.verbose = bool(splunk_config.get('verbose', False))
        self.cloud = bool(splunk_config.get('cloud', False))
        self.page_size = sync_config.get('page_size', DEFAULT_PAGE_SIZE)

        self.client = client or SplunkClient(splunk_config)
        self._syncers: Optional[List[ResourceSyncer]] = None

    def metadata(self) -> Dict[str, str]:
        return {
            'display_name': 'Splunk',
            'description': 'Connector syncing Splunk users, their roles, applications and capabilities.',
        }

    def validate(self) -> Dict[str, Any]:
        """
        Check that the configured credentials can list users on every deployment.

        Raises:
            UnauthenticatedError: If a deployment rejects the credentials
            BackendError: On any other request failure
        """
        for deployment in self.deployments:
            client = self.client.for_tenant(deployment)
            try:
                client.list_users(1)
            except AuthenticationError as e:
                security_logger.log_authentication_check(deployment, False, str(e))
                raise UnauthenticatedError(f"Provided credentials are invalid for {deployment}", deployment) from e
            finally:
                client.close_connection()

            security_logger.log_authentication_check(deployment, True)

        return {}

    def resource_syncers(self) -> List[ResourceSyncer]:
        """Return the syncers, root type first; applications only exist on-premise."""
        if self._syncers is None:
            syncers = [
                DeploymentSyncer(self.client, self.deployments, self.verbose, self.page_size),
                UserSyncer(self.client, self.page_size),
                RoleSyncer(self.client, self.page_size),
            ]
            if not self.cloud:
                syncers.append(ApplicationSyncer(self.client, self.page_size))
            self._syncers = syncers

        return self._syncers

    def syncer_for(self, resource_type_id: str) -> ResourceSyncer:
        for syncer in self.resource_syncers():
            if syncer.resource_type().id == resource_type_id:
                return syncer
        raise KeyError(f"No syncer for resource type '{resource_type_id}'")

    def _provisioner(self, resource_type_id: str) -> ResourceProvisioner:
        try:
            syncer = self.syncer_for(resource_type_id)
        except KeyError:
            syncer = None

        if not isinstance(syncer, ResourceProvisioner):
            raise UnsupportedEntitlementError(f"Entitlements of '{resource_type_id}' resources cannot be granted")
        return syncer

    def _resolve(self, entitlement_id: str, principal_type: str, principal_id: str,
                 deployment: Optional[str]):
        resource_type_id, resource_id, slug = parse_entitlement_id(entitlement_id)

        if resource_type_id == RESOURCE_TYPE_DEPLOYMENT.id:
            deployment = deployment or resource_id
        deployment = deployment or self.client.default_deployment

        syncer = self._provisioner(resource_type_id)
        resource = reference_resource(resource_type_id, resource_id, deployment)
        entitlement = syncer.entitlement_for(resource, slug)
        principal = reference_resource(principal_type, principal_id, deployment)
        logger.debug(f"Resolved {entitlement_id} for {principal_type}:{principal_id} in {deployment}")

        return syncer, entitlement, principal

    def grant(self, entitlement_id: str, principal_type: str, principal_id: str,
              deployment: Optional[str] = None) -> Dict[str, Any]:
        """
        Grant an entitlement, addressed by id, to a principal.

        Args:
            entitlement_id: '<resource type>:<resource id>:<slug>', e.g. 'role:admin:member'
            principal_type: 'user' or 'role'
            principal_id: Id of the principal within its deployment
            deployment: Deployment of the principal (defaults to the entitlement's
                deployment, then to the default deployment)
        """
        syncer, entitlement, principal = self._resolve(entitlement_id, principal_type, principal_id, deployment)
        return syncer.grant(principal, entitlement)

    def revoke(self, entitlement_id: str, principal_type: str, principal_id: str,
               deployment: Optional[str] = None) -> Dict[str, Any]:
        syncer, entitlement, principal = self._resolve(entitlement_id, principal_type, principal_id, deployment)
        return syncer.revoke(Grant(entitlement, principal))

    def close(self):
        if self._syncers:
            for syncer in self._syncers:
                syncer.close()
        self.client.close_connection()
