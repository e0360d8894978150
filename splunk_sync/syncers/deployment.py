"""
Deployment resource syncer.

Deployments are the root of the resource tree; roles, users and applications
are listed under them. In verbose mode a deployment also exposes every
grantable Splunk capability as an entitlement held by roles.
"""

import logging
from typing import Any, Dict, List, Optional, Set

from splunk_sync.client import SplunkClient
from splunk_sync.config import DEFAULT_PAGE_SIZE
from splunk_sync.logging_setup import security_logger
from splunk_sync.resources import (
    PURPOSE_PERMISSION, RESOURCE_TYPE_DEPLOYMENT, RESOURCE_TYPE_ROLE,
    Entitlement, Grant, Resource, ResourceId, deployment_resource, role_resource,
)
from splunk_sync.syncers.base import Page, ResourceProvisioner, ResourceSyncer, WrongPrincipalTypeError
from splunk_sync.syncers.mutations import MembershipMutator

logger = logging.getLogger(__name__)

CAPABILITY_PAGE_TYPE = 'capability'


def capability_entitlement(resource: Resource, capability: str) -> Entitlement:
    return Entitlement(
        resource=resource,
        slug=capability,
        purpose=PURPOSE_PERMISSION,
        display_name=f"{capability} capability",
        description=f"{capability} Splunk capability",
        grantable_to=(RESOURCE_TYPE_ROLE.id,),
    )


class DeploymentSyncer(ResourceSyncer, ResourceProvisioner):
    """Syncer for the configured Splunk deployments."""

    resource_type_def = RESOURCE_TYPE_DEPLOYMENT

    def __init__(self, client: SplunkClient, deployments: List[str], verbose: bool = False,
                 page_size: int = DEFAULT_PAGE_SIZE):
        super().__init__(client, page_size, hierarchical=False)
        self.deployments = list(deployments)
        self.verbose = verbose
        self._grantable: Dict[str, Set[str]] = {}

    def list(self, parent_id: Optional[ResourceId], token: str = '') -> Page[Resource]:
        if not self.should_list(parent_id):
            return [], '', {}

        resources = [deployment_resource(name, self.client.cloud) for name in self.deployments]
        logger.debug(f"Listed {len(resources)} deployments")
        return resources, '', {}

    def entitlements(self, resource: Resource, token: str = '') -> Page[Entitlement]:
        if not self.verbose:
            return [], '', {}

        bag = self.parse_token(token, CAPABILITY_PAGE_TYPE)
        client = self.tenant(resource.id.resource)

        capability_entries, next_page = client.list_capabilities(self.page_size, bag.page_token())
        next_token = bag.next_token(next_page)

        entitlements = []
        for entry in capability_entries:
            for capability in entry.capabilities:
                entitlements.append(capability_entitlement(resource, capability))

        return entitlements, next_token, {}

    def grantable_capabilities(self, deployment: str) -> Set[str]:
        """Every capability listed as grantable on a deployment, paged once and cached."""
        if deployment not in self._grantable:
            client = self.tenant(deployment)
            grantable = set()
            page = ''
            while True:
                capability_entries, page = client.list_capabilities(self.page_size, page)
                for entry in capability_entries:
                    grantable.update(entry.capabilities)
                if not page:
                    break
            self._grantable[deployment] = grantable

        return self._grantable[deployment]

    def grants(self, resource: Resource, token: str = '') -> Page[Grant]:
        if not self.verbose:
            return [], '', {}

        bag = self.parse_token(token, RESOURCE_TYPE_ROLE.id)
        client = self.tenant(resource.id.resource)

        roles, next_page = client.list_roles(self.page_size, bag.page_token())
        next_token = bag.next_token(next_page)
        grantable = self.grantable_capabilities(resource.id.resource)

        grants = []
        for role in roles:
            principals = self.build_resources([role], role_resource, resource.id)
            if not principals:
                continue
            for capability in role.capabilities:
                if capability not in grantable:
                    logger.warning(
                        f"Skipping grant of capability '{capability}' to role {role.name}: "
                        f"not grantable on {resource.id.resource}"
                    )
                    continue
                grants.append(Grant(capability_entitlement(resource, capability), principals[0]))

        return grants, next_token, {}

    def entitlement_for(self, resource: Resource, slug: str) -> Entitlement:
        return capability_entitlement(resource, slug)

    def _mutator(self, principal: Resource, entitlement: Entitlement, action: str) -> MembershipMutator:
        if principal.id.resource_type != RESOURCE_TYPE_ROLE.id:
            logger.warning(
                f"Only roles can have capability membership {action}: "
                f"principal_id={principal.id.resource} principal_type={principal.id.resource_type}"
            )
            raise WrongPrincipalTypeError(f"Only roles can have capability membership {action}")

        deployment = principal.deployment or entitlement.resource.id.resource
        return MembershipMutator.role_capabilities(self.tenant(deployment))

    def grant(self, principal: Resource, entitlement: Entitlement) -> Dict[str, Any]:
        mutator = self._mutator(principal, entitlement, 'granted')
        capability = entitlement.slug

        try:
            mutator.grant(principal.id.resource, capability)
        except Exception:
            security_logger.log_grant_operation('grant', capability, principal.key, mutator.deployment, False)
            raise

        security_logger.log_grant_operation('grant', capability, principal.key, mutator.deployment, True)
        return {}

    def revoke(self, grant: Grant) -> Dict[str, Any]:
        principal = grant.principal
        mutator = self._mutator(principal, grant.entitlement, 'revoked')
        capability = grant.entitlement.slug

        try:
            mutator.revoke(principal.id.resource, capability)
        except Exception:
            security_logger.log_grant_operation('revoke', capability, principal.key, mutator.deployment, False)
            raise

        security_logger.log_grant_operation('revoke', capability, principal.key, mutator.deployment, True)
        return {}
