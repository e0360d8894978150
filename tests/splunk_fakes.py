"""
In-memory stand-in for SplunkClient used by the syncer, mutation and driver tests.

Collections are paged with the same offset arithmetic as the real client,
and every write is recorded so tests can assert on what was sent.
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from splunk_sync.client import NotFoundError, handle_pagination
from splunk_sync.models import ACL, Application, Capability, Role, User


def make_user(name, roles=(), capabilities=()):
    return User(
        id=f'https://splunk:8089/services/authentication/users/{name}',
        name=name,
        email=f'{name}@example.com',
        roles=list(roles),
        capabilities=list(capabilities),
    )


def make_role(name, capabilities=(), imported=()):
    return Role(
        id=f'https://splunk:8089/services/authorization/roles/{name}',
        name=name,
        capabilities=list(capabilities),
        imported_capabilities=list(imported),
    )


def make_application(name, read=(), write=()):
    return Application(
        id=f'https://splunk:8089/servicesNS/nobody/system/apps/local/{name}',
        name=name,
        acl=ACL(app=name, read=list(read), write=list(write)),
    )


class Deployment:
    """Backend state of one fake deployment."""

    def __init__(self, users=(), roles=(), applications=(), capabilities=()):
        self.users = list(users)
        self.roles = list(roles)
        self.applications = list(applications)
        self.capabilities = [Capability(id='/capabilities', name='capabilities', capabilities=list(capabilities))]


class FakeSplunkClient:
    """Pages in-memory records per deployment and records updates."""

    def __init__(self, deployments, deployment=None, cloud=False, updates=None, requests=None):
        self.deployments = deployments
        self.default_deployment = next(iter(deployments))
        self.deployment = deployment or self.default_deployment
        self.cloud = cloud
        self.updates = updates if updates is not None else []
        self.requests = requests if requests is not None else []
        self.closed = 0

    @property
    def state(self) -> Deployment:
        return self.deployments[self.deployment]

    def for_tenant(self, deployment):
        return FakeSplunkClient(self.deployments, deployment, self.cloud, self.updates, self.requests)

    def close_connection(self):
        self.closed += 1

    def _page(self, kind, records, limit, page):
        self.requests.append((self.deployment, kind, page, limit))
        offset = int(page or 0)
        chunk = records[offset * limit:(offset + 1) * limit]
        return chunk, handle_pagination({'total': len(records), 'perPage': limit, 'offset': offset})

    def list_users(self, limit, page='', role=None):
        users = self.state.users
        if role:
            # Text search, like the server side filter
            users = [user for user in users if any(role in r for r in user.roles)]
        return self._page(f'users:{role}' if role else 'users', users, limit, page)

    def list_roles(self, limit, page=''):
        return self._page('roles', self.state.roles, limit, page)

    def list_applications(self, limit, page=''):
        return self._page('applications', self.state.applications, limit, page)

    def list_capabilities(self, limit, page=''):
        return self._page('capabilities', self.state.capabilities, limit, page)

    def get_user(self, user_id):
        for user in self.state.users:
            if user.id.rsplit('/', 1)[-1] == user_id:
                return user
        raise NotFoundError(f"User '{user_id}' not found in {self.deployment}")

    def get_role(self, role_id):
        for role in self.state.roles:
            if role.id.rsplit('/', 1)[-1] == role_id:
                return role
        raise NotFoundError(f"Role '{role_id}' not found in {self.deployment}")

    def update_user_roles(self, user_id, roles):
        self.updates.append((self.deployment, 'roles', user_id, list(roles)))
        self.get_user(user_id).roles = list(roles)

    def update_role_capabilities(self, role_id, capabilities):
        self.updates.append((self.deployment, 'capabilities', role_id, list(capabilities)))
        self.get_role(role_id).capabilities = list(capabilities)
