"""
Splunk REST API client.

This module implements the authenticated, paginated reads and the two
full-replacement writes the sync needs, along with SSL and authentication
handling. A client is bound to one deployment (tenant); use ``for_tenant`` to
obtain an independent handle for another deployment.
"""

import copy
import json
import ssl
import base64
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar
from urllib.parse import quote, urlencode, urlparse
from http.client import HTTPException, HTTPSConnection, HTTPConnection

from splunk_sync.config import LOCAL_DEPLOYMENT
from splunk_sync.models import Application, Capability, Role, User

logger = logging.getLogger(__name__)

BASE_URL = 'https://{}:8089'
CLOUD_BASE_URL = 'https://{}.splunkcloud.com:8089'

USERS_PATH = '/services/authentication/users'
ROLES_PATH = '/services/authorization/roles'
CAPABILITIES_PATH = '/services/authorization/grantable_capabilities/capabilities'
APPLICATIONS_PATH = '/services/apps/local'

T = TypeVar('T')


class BackendError(Exception):
    """Raised when a Splunk API request fails."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(BackendError):
    """Raised when Splunk rejects the credentials (401/403)."""
    pass


class NotFoundError(BackendError):
    """Raised when a single-record lookup returns no entries."""

    def __init__(self, message: str):
        super().__init__(message, 404)


class DecodeError(Exception):
    """Raised when a response body is not the expected JSON envelope."""
    pass


def build_auth_header(config: Dict[str, Any]) -> str:
    """
    Build the Authorization header value from the Splunk configuration.

    A token takes precedence over username/password credentials.
    """
    token = config.get('token')
    if token:
        return f"Bearer {token}"

    username = config.get('username')
    if username:
        password = config.get('password') or ''
        credentials = base64.b64encode(f"{username}:{password}".encode()).decode()
        return f"Basic {credentials}"

    return ''


def handle_pagination(paging: Dict[str, Any]) -> str:
    """
    Compute the next page token from a response's paging block.

    ``offset`` is the 0-indexed current page, ``perPage`` the page size and
    ``total`` the number of items in the collection.

    Returns:
        The next page index as a string, or '' when this was the last page
    """
    total = int(paging.get('total', 0) or 0)
    per_page = int(paging.get('perPage', 0) or 0)
    next_offset = int(paging.get('offset', 0) or 0) + 1

    if next_offset * per_page < total:
        return str(next_offset)

    return ''


class SplunkClient:
    """
    Client for one Splunk deployment.

    The deployment pointer is plain instance state. ``set_tenant`` and
    ``reset_tenant`` mutate it in place and must not be used concurrently;
    code that works across deployments takes a separate handle per
    deployment from ``for_tenant``.
    """

    def __init__(self, config: Dict[str, Any], deployment: Optional[str] = None):
        """
        Initialize Splunk API client.

        Args:
            config: The ``splunk`` section of the configuration
            deployment: Deployment to address (defaults to the configured default)
        """
        self.config = config
        self.cloud = bool(config.get('cloud', False))
        self.verify_ssl = not config.get('unsafe', False)
        self.timeout = config.get('timeout', 30)
        self.default_deployment = config.get('default_deployment') or LOCAL_DEPLOYMENT
        self.deployment = deployment or self.default_deployment

        self.auth_header = build_auth_header(config)
        if not self.auth_header:
            logger.warning("No Splunk credentials configured, requests will be unauthenticated")

        self.connection = None
        self.connection_host = None
        self.ssl_context = None

        self._setup_ssl_context()

    def _setup_ssl_context(self):
        """Set up SSL context based on configuration."""
        if not self.verify_ssl:
            self.ssl_context = ssl._create_unverified_context()
            logger.warning("SSL verification disabled for Splunk API")
            return

        self.ssl_context = ssl.create_default_context()

        truststore_file = self.config.get('truststore_file')
        if truststore_file:
            self._load_truststore(truststore_file)

    def _load_truststore(self, truststore_file: str):
        """Load custom CA certificates from a PEM or PKCS12 truststore."""
        truststore_type = (self.config.get('truststore_type') or 'PEM').upper()
        truststore_password = self.config.get('truststore_password')

        try:
            if truststore_type == 'PEM':
                self.ssl_context.load_verify_locations(cafile=truststore_file)
                logger.info(f"Loaded PEM truststore: {truststore_file}")

            elif truststore_type == 'PKCS12':
                from cryptography.hazmat.primitives import serialization
                from cryptography.hazmat.primitives.serialization import pkcs12

                with open(truststore_file, 'rb') as f:
                    p12_data = f.read()

                _, certificate, additional_certificates = pkcs12.load_key_and_certificates(
                    p12_data, truststore_password.encode() if truststore_password else None
                )

                ca_certs = []
                if certificate:
                    ca_certs.append(certificate.public_bytes(serialization.Encoding.PEM).decode())
                for cert in (additional_certificates or []):
                    ca_certs.append(cert.public_bytes(serialization.Encoding.PEM).decode())

                if ca_certs:
                    self.ssl_context.load_verify_locations(cadata='\n'.join(ca_certs))
                    logger.info(f"Loaded PKCS12 truststore: {truststore_file}")

            else:
                raise BackendError(f"Unsupported truststore type: {truststore_type}")

        except BackendError:
            raise
        except Exception as e:
            logger.error(f"Failed to load truststore {truststore_file}: {e}")
            raise BackendError(f"Truststore loading failed: {e}")

    # Tenant dispatch

    def for_tenant(self, deployment: str) -> 'SplunkClient':
        """
        Return an independent client handle bound to ``deployment``.

        The handle shares configuration and SSL context but owns its
        deployment pointer and connection.
        """
        handle = copy.copy(self)
        handle.deployment = deployment
        handle.connection = None
        handle.connection_host = None
        return handle

    def set_tenant(self, deployment: str):
        """Point this client at another deployment. Not reentrant."""
        if deployment != self.deployment:
            self.close_connection()
        self.deployment = deployment

    def reset_tenant(self):
        """Point this client back at the default deployment."""
        self.set_tenant(self.default_deployment)

    def is_cloud_platform(self) -> bool:
        return self.cloud

    def create_url(self, endpoint: str) -> str:
        """Return the full URL of ``endpoint`` on the current deployment."""
        base = CLOUD_BASE_URL if self.cloud else BASE_URL
        return base.format(self.deployment) + endpoint

    # HTTP plumbing

    def _get_connection(self, scheme: str, host: str):
        """Get or create the HTTP connection for ``host``."""
        if self.connection and self.connection_host == host:
            return self.connection

        self.close_connection()

        if scheme == 'https':
            self.connection = HTTPSConnection(host, context=self.ssl_context, timeout=self.timeout)
        else:
            self.connection = HTTPConnection(host, timeout=self.timeout)
        self.connection_host = host

        return self.connection

    def request(self, method: str, endpoint: str, params: Optional[Dict[str, Any]] = None,
                form: Optional[Dict[str, List[str]]] = None) -> Dict[str, Any]:
        """
        Make HTTP request to the Splunk API.

        Args:
            method: HTTP method (GET or POST)
            endpoint: API path, e.g. ``/services/authorization/roles``
            params: Extra query parameters (``output_mode=json`` is always set)
            form: Form fields for the request body; list values repeat the key

        Returns:
            Parsed JSON response (empty dict for an empty body)

        Raises:
            AuthenticationError: On 401/403
            BackendError: On any other status >= 300 or a transport failure
            DecodeError: If the body is not a valid JSON object
        """
        parsed = urlparse(self.create_url(endpoint))

        query = {'output_mode': 'json'}
        if params:
            query.update({key: value for key, value in params.items() if value not in (None, '')})
        full_path = f"{parsed.path}?{urlencode(query)}"

        body = urlencode(form, doseq=True) if form is not None else None

        headers = {'content-type': 'application/json'}
        if self.auth_header:
            headers['Authorization'] = self.auth_header

        try:
            conn = self._get_connection(parsed.scheme, parsed.netloc)

            logger.debug(f"Making {method} request to {parsed.netloc}{full_path}")
            conn.request(method, full_path, body, headers)

            response = conn.getresponse()
            raw_data = response.read()
        except (OSError, HTTPException) as e:
            self.close_connection()
            raise BackendError(f"Connection error to {self.deployment}: {e}") from e

        logger.debug(f"Response status: {response.status} {response.reason}")

        if response.status >= 300:
            if response.status in (401, 403):
                raise AuthenticationError(
                    f"Authentication failed for {self.deployment}: HTTP {response.status}",
                    response.status,
                )
            raise BackendError(f"HTTP {response.status}: {response.reason}", response.status)

        if not raw_data:
            return {}

        try:
            data = json.loads(raw_data.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecodeError(f"Invalid JSON response from {self.deployment}: {e}")

        if not isinstance(data, dict):
            raise DecodeError(f"Unexpected response from {self.deployment}: expected an object, got {type(data).__name__}")

        return data

    def close_connection(self):
        """Close HTTP connection."""
        if self.connection:
            try:
                self.connection.close()
            except OSError as e:
                logger.warning(f"Error closing connection for {self.deployment}: {e}")
            finally:
                self.connection = None
                self.connection_host = None

    # Envelope handling

    def _entries(self, response: Dict[str, Any]) -> List[Dict[str, Any]]:
        entries = response.get('entry', [])
        if not isinstance(entries, list):
            raise DecodeError(f"Unexpected response envelope from {self.deployment}: 'entry' is not a list")
        return entries

    def _list(self, endpoint: str, factory: Callable[[Dict[str, Any]], T], limit: int,
              page: str, search: Optional[str] = None) -> Tuple[List[T], str]:
        response = self.request('GET', endpoint, params={
            'count': limit or None,
            'offset': page or None,
            'search': search,
        })

        paging = response.get('paging') or {}
        if not isinstance(paging, dict):
            raise DecodeError(f"Unexpected response envelope from {self.deployment}: 'paging' is not an object")

        try:
            records = [factory(entry) for entry in self._entries(response)]
            next_page = handle_pagination(paging)
        except (AttributeError, TypeError, ValueError) as e:
            raise DecodeError(f"Unexpected record in response from {self.deployment}: {e}")

        return records, next_page

    def _get_one(self, endpoint: str, factory: Callable[[Dict[str, Any]], T], label: str) -> T:
        entries = self._entries(self.request('GET', endpoint))
        if not entries:
            raise NotFoundError(f"{label} not found in {self.deployment}")

        try:
            return factory(entries[0])
        except (AttributeError, TypeError, ValueError) as e:
            raise DecodeError(f"Unexpected record in response from {self.deployment}: {e}")

    # Reads

    def list_users(self, limit: int, page: str = '', role: Optional[str] = None) -> Tuple[List[User], str]:
        """
        Get one page of users, optionally filtered by role.

        Returns:
            Tuple of (users, next page token or '')
        """
        search = f'roles="{role}"' if role else None
        return self._list(USERS_PATH, User.from_dict, limit, page, search)

    def list_roles(self, limit: int, page: str = '') -> Tuple[List[Role], str]:
        return self._list(ROLES_PATH, Role.from_dict, limit, page)

    def list_applications(self, limit: int, page: str = '') -> Tuple[List[Application], str]:
        return self._list(APPLICATIONS_PATH, Application.from_dict, limit, page)

    def list_capabilities(self, limit: int, page: str = '') -> Tuple[List[Capability], str]:
        return self._list(CAPABILITIES_PATH, Capability.from_dict, limit, page)

    def get_user(self, user_id: str) -> User:
        return self._get_one(f"{USERS_PATH}/{quote(user_id, safe='')}", User.from_dict, f"User '{user_id}'")

    def get_role(self, role_id: str) -> Role:
        return self._get_one(f"{ROLES_PATH}/{quote(role_id, safe='')}", Role.from_dict, f"Role '{role_id}'")

    def get_application(self, name: str) -> Application:
        return self._get_one(f"{APPLICATIONS_PATH}/{quote(name, safe='')}", Application.from_dict,
                             f"Application '{name}'")

    # Writes

    def update_user_roles(self, user_id: str, roles: List[str]):
        """Replace the complete role list of a user."""
        self.request('POST', f"{USERS_PATH}/{quote(user_id, safe='')}", form={'roles': list(roles)})
        logger.debug(f"Updated roles of user '{user_id}' in {self.deployment}: {roles}")

    def update_role_capabilities(self, role_id: str, capabilities: List[str]):
        """Replace the complete capability list of a role."""
        self.request('POST', f"{ROLES_PATH}/{quote(role_id, safe='')}", form={'capabilities': list(capabilities)})
        logger.debug(f"Updated capabilities of role '{role_id}' in {self.deployment}: {capabilities}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close_connection()
