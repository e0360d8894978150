"""
User resource syncer.

Users are terminal principals: they are listed, but hold entitlements only
through roles and applications and never expose any of their own.
"""

import logging
from typing import Optional

from splunk_sync.resources import RESOURCE_TYPE_USER, Entitlement, Grant, Resource, ResourceId, user_resource
from splunk_sync.syncers.base import Page, ResourceSyncer

logger = logging.getLogger(__name__)


class UserSyncer(ResourceSyncer):
    """Syncer for Splunk users."""

    resource_type_def = RESOURCE_TYPE_USER

    def list(self, parent_id: Optional[ResourceId], token: str = '') -> Page[Resource]:
        if not self.should_list(parent_id):
            return [], '', {}

        bag = self.parse_token(token, RESOURCE_TYPE_USER.id)
        client = self.tenant(parent_id.resource if parent_id else None)

        users, next_page = client.list_users(self.page_size, bag.page_token())
        next_token = bag.next_token(next_page)

        resources = self.build_resources(users, user_resource, parent_id)
        logger.debug(f"Listed {len(resources)} users from {client.deployment}")
        return resources, next_token, {}

    def entitlements(self, resource: Resource, token: str = '') -> Page[Entitlement]:
        return [], '', {}

    def grants(self, resource: Resource, token: str = '') -> Page[Grant]:
        return [], '', {}
