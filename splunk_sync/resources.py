"""
Access graph types and the mapping from Splunk records to graph resources.

Resources are the nodes of the graph (deployments, users, roles and
applications). Entitlements are the permissions a resource can hand out and
grants are the edges from an entitlement to the principal holding it.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from splunk_sync.models import Application, Role, User

logger = logging.getLogger(__name__)

PURPOSE_ASSIGNMENT = 'assignment'
PURPOSE_PERMISSION = 'permission'


class MappingError(Exception):
    """Raised when a backend record cannot be turned into a graph resource."""
    pass


@dataclass(frozen=True)
class ResourceType:
    id: str
    display_name: str
    traits: Tuple[str, ...] = ()
    skip_entitlements_and_grants: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'display_name': self.display_name,
            'traits': list(self.traits),
            'skip_entitlements_and_grants': self.skip_entitlements_and_grants,
        }


RESOURCE_TYPE_DEPLOYMENT = ResourceType('deployment', 'Deployment')
RESOURCE_TYPE_USER = ResourceType('user', 'User', ('user',), skip_entitlements_and_grants=True)
RESOURCE_TYPE_ROLE = ResourceType('role', 'Role', ('role',))
RESOURCE_TYPE_APPLICATION = ResourceType('application', 'Application', ('group',))


@dataclass(frozen=True)
class ResourceId:
    resource_type: str
    resource: str

    def __str__(self):
        return f"{self.resource_type}:{self.resource}"


def _join(values: List[str]) -> str:
    return ','.join(values)


def _split(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(item) for item in value]
    if not value:
        return []
    return str(value).split(',')


@dataclass
class DeploymentProfile:
    deployment: str
    cloud: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.extra, deployment=self.deployment, cloud=self.cloud)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DeploymentProfile':
        extra = {k: v for k, v in data.items() if k not in ('deployment', 'cloud')}
        return cls(data.get('deployment', ''), bool(data.get('cloud', False)), extra)


@dataclass
class UserProfile:
    user_id: str
    user_name: str
    login: str = ''
    roles: List[str] = field(default_factory=list)
    capabilities: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return dict(
            self.extra,
            user_id=self.user_id,
            user_name=self.user_name,
            login=self.login,
            user_roles=_join(self.roles),
            user_capabilities=_join(self.capabilities),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UserProfile':
        known = ('user_id', 'user_name', 'login', 'user_roles', 'user_capabilities')
        return cls(
            user_id=data.get('user_id', ''),
            user_name=data.get('user_name', ''),
            login=data.get('login', ''),
            roles=_split(data.get('user_roles')),
            capabilities=_split(data.get('user_capabilities')),
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass
class RoleProfile:
    role_id: str
    role_name: str
    capabilities: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return dict(
            self.extra,
            role_id=self.role_id,
            role_name=self.role_name,
            role_capabilities=_join(self.capabilities),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RoleProfile':
        known = ('role_id', 'role_name', 'role_capabilities')
        return cls(
            role_id=data.get('role_id', ''),
            role_name=data.get('role_name', ''),
            capabilities=_split(data.get('role_capabilities')),
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass
class ApplicationProfile:
    application_id: str
    application_name: str
    read_roles: List[str] = field(default_factory=list)
    write_roles: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return dict(
            self.extra,
            application_id=self.application_id,
            application_name=self.application_name,
            application_read_roles=_join(self.read_roles),
            application_write_roles=_join(self.write_roles),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ApplicationProfile':
        known = ('application_id', 'application_name', 'application_read_roles', 'application_write_roles')
        return cls(
            application_id=data.get('application_id', ''),
            application_name=data.get('application_name', ''),
            read_roles=_split(data.get('application_read_roles')),
            write_roles=_split(data.get('application_write_roles')),
            extra={k: v for k, v in data.items() if k not in known},
        )


Profile = Union[DeploymentProfile, UserProfile, RoleProfile, ApplicationProfile]


@dataclass
class Resource:
    id: ResourceId
    display_name: str
    profile: Profile
    parent_resource_id: Optional[ResourceId] = None
    child_resource_types: List[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        """Graph-wide key; ids alone repeat across deployments."""
        if self.parent_resource_id is None:
            return str(self.id)
        return f"{self.parent_resource_id}/{self.id}"

    @property
    def deployment(self) -> Optional[str]:
        """Name of the deployment this resource lives in."""
        if self.id.resource_type == RESOURCE_TYPE_DEPLOYMENT.id:
            return self.id.resource
        if self.parent_resource_id is not None:
            return self.parent_resource_id.resource
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'key': self.key,
            'id': str(self.id),
            'resource_type': self.id.resource_type,
            'resource': self.id.resource,
            'display_name': self.display_name,
            'parent': str(self.parent_resource_id) if self.parent_resource_id else None,
            'child_resource_types': list(self.child_resource_types),
            'profile': self.profile.as_dict(),
        }


@dataclass
class Entitlement:
    resource: Resource
    slug: str
    purpose: str
    display_name: str = ''
    description: str = ''
    grantable_to: Tuple[str, ...] = ()

    @property
    def id(self) -> str:
        return f"{self.resource.id}:{self.slug}"

    @property
    def key(self) -> str:
        return f"{self.resource.key}:{self.slug}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'key': self.key,
            'id': self.id,
            'resource': self.resource.key,
            'slug': self.slug,
            'purpose': self.purpose,
            'display_name': self.display_name,
            'description': self.description,
            'grantable_to': list(self.grantable_to),
        }


@dataclass
class Grant:
    entitlement: Entitlement
    principal: Resource

    @property
    def id(self) -> str:
        return f"{self.entitlement.key}:{self.principal.key}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'entitlement': self.entitlement.key,
            'principal': self.principal.key,
        }


def parse_entitlement_id(entitlement_id: str) -> Tuple[str, str, str]:
    """
    Split an entitlement id into (resource type, resource id, slug).

    Resource ids never contain ':' but capability slugs may, so only the
    first two separators are significant.
    """
    parts = entitlement_id.split(':', 2)
    if len(parts) != 3 or not all(parts):
        raise MappingError(f"Invalid entitlement id: {entitlement_id}")
    return parts[0], parts[1], parts[2]


def strip_to_last_segment(locator: str) -> str:
    """
    Reduce a URL-style locator to its trailing path segment.

    Raises:
        MappingError: If the locator contains no '/' or ends with one
    """
    index = locator.rfind('/') if locator else -1
    if index == -1 or index == len(locator) - 1:
        raise MappingError(f"Failed to parse resource id: {locator!r}")
    return locator[index + 1:]


# Underscores, digits and inner apostrophes or periods do not start a new word
WORD_PATTERN = re.compile(r"\w+(?:['\u2019.:]\w+)*")


def title_case(value: str) -> str:
    return WORD_PATTERN.sub(lambda match: match.group(0)[0].upper() + match.group(0)[1:].lower(), value)


def deployment_resource(deployment: str, cloud: bool = False) -> Resource:
    """Create the root resource for a deployment; every other resource is scoped under it."""
    children = [RESOURCE_TYPE_ROLE.id, RESOURCE_TYPE_USER.id]
    if not cloud:
        children.append(RESOURCE_TYPE_APPLICATION.id)

    return Resource(
        id=ResourceId(RESOURCE_TYPE_DEPLOYMENT.id, deployment),
        display_name=title_case(deployment),
        profile=DeploymentProfile(deployment=deployment, cloud=cloud),
        child_resource_types=children,
    )


def user_resource(user: User, parent_id: Optional[ResourceId] = None) -> Resource:
    user_id = strip_to_last_segment(user.id)

    profile = UserProfile(
        user_id=user_id,
        user_name=user.name,
        login=user.email,
        roles=list(user.roles),
        capabilities=list(user.capabilities),
    )

    return Resource(
        id=ResourceId(RESOURCE_TYPE_USER.id, user_id),
        display_name=title_case(user.name),
        profile=profile,
        parent_resource_id=parent_id,
    )


def role_resource(role: Role, parent_id: Optional[ResourceId] = None) -> Resource:
    role_id = strip_to_last_segment(role.id)

    profile = RoleProfile(
        role_id=role_id,
        role_name=role.name,
        capabilities=role.effective_capabilities,
    )

    return Resource(
        id=ResourceId(RESOURCE_TYPE_ROLE.id, role_id),
        display_name=title_case(role.name),
        profile=profile,
        parent_resource_id=parent_id,
    )


def application_resource(application: Application, parent_id: Optional[ResourceId] = None) -> Resource:
    application_id = strip_to_last_segment(application.id)

    profile = ApplicationProfile(
        application_id=application_id,
        application_name=application.name,
        read_roles=list(application.acl.read),
        write_roles=list(application.acl.write),
    )
    if application.description:
        profile.extra['application_description'] = application.description

    return Resource(
        id=ResourceId(RESOURCE_TYPE_APPLICATION.id, application_id),
        display_name=title_case(application.name),
        profile=profile,
        parent_resource_id=parent_id,
    )
