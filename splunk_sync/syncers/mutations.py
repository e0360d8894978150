"""
Read-modify-write updates of role and capability lists.

Splunk only offers full-replacement updates of a user's roles and of a role's
capabilities, with no conditional update. A grant or revoke therefore reads
the current list, checks it, and writes the complete new list back. Within
one process the sequence is serialized per principal; writes made by other
processes between the read and the write are lost.
"""

import logging
import threading
from typing import Callable, Dict, Hashable, List

from splunk_sync.client import SplunkClient
from splunk_sync.syncers.base import AlreadyGrantedError, NotGrantedError, is_present, remove_first

logger = logging.getLogger(__name__)


class PrincipalLocks:
    """Hands out one lock per principal key."""

    def __init__(self):
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock


# Shared by every mutator in the process
principal_locks = PrincipalLocks()


class MembershipMutator:
    """
    Grants and revokes one value in a principal's list.

    Args:
        kind: Label of the list, used in lock keys and messages ('roles', 'capabilities')
        deployment: Deployment the principal lives in
        read_list: Returns the current list of a principal by id
        write_list: Replaces the list of a principal by id
        locks: Lock registry (defaults to the process-wide one)
    """

    def __init__(self, kind: str, deployment: str,
                 read_list: Callable[[str], List[str]],
                 write_list: Callable[[str, List[str]], None],
                 locks: PrincipalLocks = None):
        self.kind = kind
        self.deployment = deployment
        self.read_list = read_list
        self.write_list = write_list
        self.locks = locks or principal_locks

    @classmethod
    def user_roles(cls, client: SplunkClient, locks: PrincipalLocks = None) -> 'MembershipMutator':
        return cls(
            'roles', client.deployment,
            lambda user_id: client.get_user(user_id).roles,
            client.update_user_roles,
            locks,
        )

    @classmethod
    def role_capabilities(cls, client: SplunkClient, locks: PrincipalLocks = None) -> 'MembershipMutator':
        return cls(
            'capabilities', client.deployment,
            lambda role_id: client.get_role(role_id).capabilities,
            client.update_role_capabilities,
            locks,
        )

    def _lock(self, principal_id: str) -> threading.Lock:
        return self.locks.lock_for((self.deployment, self.kind, principal_id))

    def grant(self, principal_id: str, value: str) -> List[str]:
        """
        Append ``value`` to the principal's list.

        Returns:
            The list that was written

        Raises:
            AlreadyGrantedError: If ``value`` is already present; nothing is written
        """
        with self._lock(principal_id):
            current = list(self.read_list(principal_id))

            if is_present(current, value):
                raise AlreadyGrantedError(f"{value} already present in {self.kind} of '{principal_id}'")

            updated = current + [value]
            self.write_list(principal_id, updated)

        logger.info(f"Granted {value} to '{principal_id}' {self.kind} in {self.deployment}")
        return updated

    def revoke(self, principal_id: str, value: str) -> List[str]:
        """
        Remove the first occurrence of ``value`` from the principal's list.

        Raises:
            NotGrantedError: If ``value`` is absent; nothing is written
        """
        with self._lock(principal_id):
            current = list(self.read_list(principal_id))

            if not is_present(current, value):
                raise NotGrantedError(f"{value} not present in {self.kind} of '{principal_id}'")

            updated = remove_first(current, value)
            self.write_list(principal_id, updated)

        logger.info(f"Revoked {value} from '{principal_id}' {self.kind} in {self.deployment}")
        return updated
