"""
Typed records for the Splunk REST API entries.

Each record is built from one element of a response's ``entry`` list. Missing
optional keys fall back to empty values; a missing ``id`` or ``name`` is left
empty and caught later when the record is mapped to a graph resource.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


def _string_list(value: Any) -> List[str]:
    """Normalize a JSON value that should be a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value]


@dataclass
class ACL:
    """Access-control entry attached to every Splunk object."""

    app: str = ''
    read: List[str] = field(default_factory=list)
    write: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ACL':
        data = data or {}
        perms = data.get('perms') or {}
        return cls(
            app=data.get('app', ''),
            read=_string_list(perms.get('read')),
            write=_string_list(perms.get('write')),
        )


@dataclass
class User:
    id: str
    name: str
    email: str = ''
    roles: List[str] = field(default_factory=list)
    capabilities: List[str] = field(default_factory=list)
    acl: ACL = field(default_factory=ACL)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        content = data.get('content') or {}
        return cls(
            id=data.get('id', ''),
            name=data.get('name', ''),
            email=content.get('email', '') or '',
            roles=_string_list(content.get('roles')),
            capabilities=_string_list(content.get('capabilities')),
            acl=ACL.from_dict(data.get('acl')),
        )


@dataclass
class Role:
    id: str
    name: str
    author: str = ''
    capabilities: List[str] = field(default_factory=list)
    imported_capabilities: List[str] = field(default_factory=list)
    acl: ACL = field(default_factory=ACL)

    @property
    def effective_capabilities(self) -> List[str]:
        """Own capabilities followed by imported ones, duplicates kept."""
        return list(self.capabilities) + list(self.imported_capabilities)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Role':
        content = data.get('content') or {}
        return cls(
            id=data.get('id', ''),
            name=data.get('name', ''),
            author=data.get('author', ''),
            capabilities=_string_list(content.get('capabilities')),
            imported_capabilities=_string_list(content.get('imported_capabilities')),
            acl=ACL.from_dict(data.get('acl')),
        )


@dataclass
class Application:
    id: str
    name: str
    author: str = ''
    description: str = ''
    acl: ACL = field(default_factory=ACL)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Application':
        content = data.get('content') or {}
        return cls(
            id=data.get('id', ''),
            name=data.get('name', ''),
            author=data.get('author', ''),
            description=content.get('description', '') or '',
            acl=ACL.from_dict(data.get('acl')),
        )


@dataclass
class Capability:
    """One entry of the grantable capabilities listing."""

    id: str
    name: str
    capabilities: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Capability':
        content = data.get('content') or {}
        return cls(
            id=data.get('id', ''),
            name=data.get('name', ''),
            capabilities=_string_list(content.get('capabilities')),
        )
