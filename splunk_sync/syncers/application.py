"""
Application resource syncer (on-premise deployments only).

An application exposes ``read`` and ``write`` permissions. A user holds one
when any of the user's roles appears in the matching ACL list of the
application, where '*' admits every role.
"""

import logging
from typing import List, Optional

from splunk_sync.resources import (
    PURPOSE_PERMISSION, RESOURCE_TYPE_APPLICATION, RESOURCE_TYPE_USER, ApplicationProfile,
    Entitlement, Grant, MappingError, Resource, ResourceId, application_resource, user_resource,
)
from splunk_sync.syncers.base import Page, ResourceSyncer, contains_role

logger = logging.getLogger(__name__)

READ_PERMISSION = 'read'
WRITE_PERMISSION = 'write'


def application_entitlement(resource: Resource, permission: str) -> Entitlement:
    return Entitlement(
        resource=resource,
        slug=permission,
        purpose=PURPOSE_PERMISSION,
        display_name=f"{resource.display_name} application {permission.upper()}",
        description=f"{resource.display_name} Splunk application",
        grantable_to=(RESOURCE_TYPE_USER.id,),
    )


def holds_permission(acl_roles: List[str], user_roles: List[str]) -> bool:
    return any(contains_role(acl_roles, role) for role in user_roles)


class ApplicationSyncer(ResourceSyncer):
    """Syncer for Splunk applications."""

    resource_type_def = RESOURCE_TYPE_APPLICATION

    def list(self, parent_id: Optional[ResourceId], token: str = '') -> Page[Resource]:
        if not self.should_list(parent_id):
            return [], '', {}

        bag = self.parse_token(token, RESOURCE_TYPE_APPLICATION.id)
        client = self.tenant(parent_id.resource if parent_id else None)

        applications, next_page = client.list_applications(self.page_size, bag.page_token())
        next_token = bag.next_token(next_page)

        resources = self.build_resources(applications, application_resource, parent_id)
        logger.debug(f"Listed {len(resources)} applications from {client.deployment}")
        return resources, next_token, {}

    def entitlements(self, resource: Resource, token: str = '') -> Page[Entitlement]:
        return [
            application_entitlement(resource, READ_PERMISSION),
            application_entitlement(resource, WRITE_PERMISSION),
        ], '', {}

    def grants(self, resource: Resource, token: str = '') -> Page[Grant]:
        profile = resource.profile
        if not isinstance(profile, ApplicationProfile):
            raise MappingError(f"Resource {resource.key} has no application profile")

        bag = self.parse_token(token, RESOURCE_TYPE_USER.id)
        client = self.tenant(resource.deployment)

        users, next_page = client.list_users(self.page_size, bag.page_token())
        next_token = bag.next_token(next_page)

        read = application_entitlement(resource, READ_PERMISSION)
        write = application_entitlement(resource, WRITE_PERMISSION)

        grants = []
        for user in users:
            principals = self.build_resources([user], user_resource, resource.parent_resource_id)
            if not principals:
                continue

            if holds_permission(profile.read_roles, user.roles):
                grants.append(Grant(read, principals[0]))
            if holds_permission(profile.write_roles, user.roles):
                grants.append(Grant(write, principals[0]))

        return grants, next_token, {}
