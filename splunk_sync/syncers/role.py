"""
Role resource syncer.

A role exposes a ``member`` entitlement held by its users and one permission
per effective capability. Role membership can be granted to and revoked from
users.
"""

import logging
from typing import Any, Dict, Optional

from splunk_sync.logging_setup import security_logger
from splunk_sync.resources import (
    PURPOSE_ASSIGNMENT, PURPOSE_PERMISSION, RESOURCE_TYPE_ROLE, RESOURCE_TYPE_USER,
    Entitlement, Grant, Resource, ResourceId, RoleProfile, role_resource, user_resource,
)
from splunk_sync.syncers.base import (
    Page, ResourceProvisioner, ResourceSyncer, UnsupportedEntitlementError, WrongPrincipalTypeError,
)
from splunk_sync.syncers.mutations import MembershipMutator

logger = logging.getLogger(__name__)

ROLE_MEMBER = 'member'


def role_name(resource: Resource) -> str:
    """Name users reference the role by; falls back to the resource id."""
    if isinstance(resource.profile, RoleProfile) and resource.profile.role_name:
        return resource.profile.role_name
    return resource.id.resource


def member_entitlement(resource: Resource) -> Entitlement:
    return Entitlement(
        resource=resource,
        slug=ROLE_MEMBER,
        purpose=PURPOSE_ASSIGNMENT,
        display_name=f"{resource.display_name} role",
        description=f"{resource.display_name} Splunk role",
        grantable_to=(RESOURCE_TYPE_USER.id,),
    )


def role_capability_entitlement(resource: Resource, capability: str) -> Entitlement:
    return Entitlement(
        resource=resource,
        slug=capability,
        purpose=PURPOSE_PERMISSION,
        display_name=f"{resource.display_name} role {capability} capability",
        description=f"{capability} capability of the {resource.display_name} Splunk role",
        grantable_to=(RESOURCE_TYPE_USER.id,),
    )


class RoleSyncer(ResourceSyncer, ResourceProvisioner):
    """Syncer for Splunk roles."""

    resource_type_def = RESOURCE_TYPE_ROLE

    def list(self, parent_id: Optional[ResourceId], token: str = '') -> Page[Resource]:
        if not self.should_list(parent_id):
            return [], '', {}

        bag = self.parse_token(token, RESOURCE_TYPE_ROLE.id)
        client = self.tenant(parent_id.resource if parent_id else None)

        roles, next_page = client.list_roles(self.page_size, bag.page_token())
        next_token = bag.next_token(next_page)

        resources = self.build_resources(roles, role_resource, parent_id)
        logger.debug(f"Listed {len(resources)} roles from {client.deployment}")
        return resources, next_token, {}

    def entitlements(self, resource: Resource, token: str = '') -> Page[Entitlement]:
        entitlements = [member_entitlement(resource)]

        capabilities = resource.profile.capabilities if isinstance(resource.profile, RoleProfile) else []
        for capability in capabilities:
            entitlements.append(role_capability_entitlement(resource, capability))

        return entitlements, '', {}

    def grants(self, resource: Resource, token: str = '') -> Page[Grant]:
        bag = self.parse_token(token, RESOURCE_TYPE_USER.id)
        client = self.tenant(resource.deployment)
        name = role_name(resource)

        users, next_page = client.list_users(self.page_size, bag.page_token(), role=name)
        next_token = bag.next_token(next_page)

        # The search filter is a text match; confirm membership on the record
        members = [user for user in users if name in user.roles]

        entitlement = member_entitlement(resource)
        principals = self.build_resources(members, user_resource, resource.parent_resource_id)
        grants = [Grant(entitlement, principal) for principal in principals]

        return grants, next_token, {}

    def entitlement_for(self, resource: Resource, slug: str) -> Entitlement:
        if slug == ROLE_MEMBER:
            return member_entitlement(resource)
        return role_capability_entitlement(resource, slug)

    def _mutator(self, principal: Resource, entitlement: Entitlement, action: str) -> MembershipMutator:
        if principal.id.resource_type != RESOURCE_TYPE_USER.id:
            logger.warning(
                f"Only users can have role membership {action}: "
                f"principal_id={principal.id.resource} principal_type={principal.id.resource_type}"
            )
            raise WrongPrincipalTypeError(f"Only users can have role membership {action}")

        if entitlement.slug != ROLE_MEMBER:
            raise UnsupportedEntitlementError(
                f"Role capability entitlement '{entitlement.slug}' cannot be {action} to users directly"
            )

        deployment = principal.deployment or entitlement.resource.deployment
        return MembershipMutator.user_roles(self.tenant(deployment))

    def grant(self, principal: Resource, entitlement: Entitlement) -> Dict[str, Any]:
        mutator = self._mutator(principal, entitlement, 'granted')
        name = role_name(entitlement.resource)

        try:
            mutator.grant(principal.id.resource, name)
        except Exception:
            security_logger.log_grant_operation('grant', name, principal.key, mutator.deployment, False)
            raise

        security_logger.log_grant_operation('grant', name, principal.key, mutator.deployment, True)
        return {}

    def revoke(self, grant: Grant) -> Dict[str, Any]:
        principal = grant.principal
        mutator = self._mutator(principal, grant.entitlement, 'revoked')
        name = role_name(grant.entitlement.resource)

        try:
            mutator.revoke(principal.id.resource, name)
        except Exception:
            security_logger.log_grant_operation('revoke', name, principal.key, mutator.deployment, False)
            raise

        security_logger.log_grant_operation('revoke', name, principal.key, mutator.deployment, True)
        return {}
