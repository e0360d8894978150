"""
Resource syncers for the Splunk access graph.

Each syncer handles one resource type: deployments (the root), users, roles
and applications.
"""

from splunk_sync.syncers.application import ApplicationSyncer
from splunk_sync.syncers.base import (
    AlreadyGrantedError, MutationError, NotGrantedError, ResourceProvisioner, ResourceSyncer,
    UnsupportedEntitlementError, WrongPrincipalTypeError,
)
from splunk_sync.syncers.deployment import DeploymentSyncer
from splunk_sync.syncers.role import RoleSyncer
from splunk_sync.syncers.user import UserSyncer

__all__ = [
    'AlreadyGrantedError',
    'ApplicationSyncer',
    'DeploymentSyncer',
    'MutationError',
    'NotGrantedError',
    'ResourceProvisioner',
    'ResourceSyncer',
    'RoleSyncer',
    'UnsupportedEntitlementError',
    'UserSyncer',
    'WrongPrincipalTypeError',
]
