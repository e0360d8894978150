"""
Main orchestrator for Splunk Sync.

This module drives a full sync: it walks every resource type of the
connector, pages resources, entitlements and grants until exhausted, checks
that the resulting graph has no dangling grant edges and writes it out as
JSON. It also runs single grant/revoke mutations and health checks.
"""

import sys
import json
import logging
from collections import deque
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from splunk_sync.client import AuthenticationError, BackendError
from splunk_sync.config import ConfigurationError, load_config
from splunk_sync.connector import Connector, UnauthenticatedError
from splunk_sync.logging_setup import security_logger, setup_logging
from splunk_sync.resources import Entitlement, Grant, MappingError, Resource, ResourceId
from splunk_sync.retry import retry_call_with_config
from splunk_sync.syncers import MutationError, ResourceSyncer

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_FILE = 'sync_graph.json'


class SyncError(Exception):
    """Base exception for sync errors."""
    pass


class SyncGraph:
    """Resources, entitlements and grants collected during one sync."""

    def __init__(self):
        self.resource_types: List[Dict[str, Any]] = []
        self.resources: Dict[str, Resource] = {}
        self.entitlements: Dict[str, Entitlement] = {}
        self.grants: Dict[str, Grant] = {}

    def add_resource(self, resource: Resource):
        self.resources[resource.key] = resource

    def add_entitlement(self, entitlement: Entitlement):
        self.entitlements[entitlement.key] = entitlement

    def add_grant(self, grant: Grant):
        self.grants[grant.id] = grant

    def dangling_grants(self) -> List[Grant]:
        """Grants whose principal, entitlement or entitlement resource was never emitted."""
        return [
            grant for grant in self.grants.values()
            if grant.principal.key not in self.resources
            or grant.entitlement.key not in self.entitlements
            or grant.entitlement.resource.key not in self.resources
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'resource_types': self.resource_types,
            'resources': [resource.to_dict() for resource in self.resources.values()],
            'entitlements': [entitlement.to_dict() for entitlement in self.entitlements.values()],
            'grants': [grant.to_dict() for grant in self.grants.values()],
        }


class SyncOrchestrator:
    """
    Main orchestrator for Splunk synchronization.

    Args:
        config_path: Path to configuration file
        connector_factory: Builds the connector from the loaded configuration
    """

    def __init__(self, config_path: Optional[str] = None,
                 connector_factory: Callable[[Dict[str, Any]], Connector] = Connector):
        self.config = None
        self.config_path = config_path
        self.connector = None
        self.connector_factory = connector_factory
        self.graph = None

        # Sync statistics and timing
        self.sync_stats = {
            'resources': 0,
            'entitlements': 0,
            'grants': 0,
            'pages_fetched': 0,
            'start_time': None,
            'end_time': None,
            'runtime_seconds': 0,
            'type_details': {}
        }

    def run(self) -> int:
        """
        Run the complete synchronization process.

        Returns:
            Exit code (0 for success, non-zero for failure)
        """
        try:
            self.sync_stats['start_time'] = datetime.now()

            self._load_configuration()
            self._setup_logging()

            logger.info("Starting Splunk Sync")

            self._connect()
            self.connector.validate()

            self.graph = self._sync()
            self._check_graph(self.graph)
            self._write_output(self.graph)

            self.sync_stats['end_time'] = datetime.now()
            self.sync_stats['runtime_seconds'] = (
                self.sync_stats['end_time'] - self.sync_stats['start_time']
            ).total_seconds()

            self._log_sync_summary()

            logger.info("Sync completed successfully")
            return 0

        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            return 2
        except (UnauthenticatedError, AuthenticationError) as e:
            logger.error(f"Authentication error: {e}")
            return 3
        except Exception as e:
            logger.error(f"Unexpected error: {e}", exc_info=True)
            return 4
        finally:
            self._cleanup()

    def _load_configuration(self):
        """Load and validate configuration."""
        try:
            self.config = load_config(self.config_path)
            logger.debug("Configuration loaded successfully")
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration: {e}")

        security_logger.log_configuration_access(self.config_path or 'config.yaml')

    def _setup_logging(self):
        setup_logging(self.config.get('logging', {}))

    def _connect(self):
        self.connector = self.connector_factory(self.config)

    def _retry(self, func: Callable[[], Any], operation_name: str) -> Any:
        return retry_call_with_config(func, self.config.get('error_handling', {}), operation_name)

    def _collect(self, call: Callable[[str], Tuple[List[Any], str, Dict[str, Any]]], operation_name: str) -> List[Any]:
        """
        Page ``call`` until it returns an empty continuation token.

        Raises:
            SyncError: If a page hands back the token it was called with
        """
        items = []
        token = ''

        while True:
            page, next_token, _ = self._retry(lambda t=token: call(t), operation_name)
            self.sync_stats['pages_fetched'] += 1
            items.extend(page)

            if not next_token:
                return items
            if next_token == token:
                raise SyncError(f"{operation_name} returned the same continuation token twice")
            token = next_token

    def _sync(self) -> SyncGraph:
        """
        Walk every resource type, root types first, then child types per parent.

        Returns:
            The collected graph
        """
        graph = SyncGraph()
        syncers = self.connector.resource_syncers()
        syncers_by_type: Dict[str, ResourceSyncer] = {}

        for syncer in syncers:
            resource_type = syncer.resource_type()
            syncers_by_type[resource_type.id] = syncer
            graph.resource_types.append(resource_type.to_dict())

        pending = deque((type_id, None) for type_id in syncers_by_type)
        visited = set()

        while pending:
            type_id, parent_id = pending.popleft()
            if (type_id, parent_id) in visited:
                continue
            visited.add((type_id, parent_id))

            syncer = syncers_by_type.get(type_id)
            if syncer is None:
                logger.debug(f"No syncer for child resource type '{type_id}', skipping")
                continue

            for resource in self._sync_resources(syncer, parent_id, graph):
                for child_type_id in resource.child_resource_types:
                    pending.append((child_type_id, resource.id))

        return graph

    def _sync_resources(self, syncer: ResourceSyncer, parent_id: Optional[ResourceId],
                        graph: SyncGraph) -> List[Resource]:
        resource_type = syncer.resource_type()
        details = self.sync_stats['type_details'].setdefault(
            resource_type.id, {'resources': 0, 'entitlements': 0, 'grants': 0}
        )

        scope = f" under {parent_id}" if parent_id else ''
        resources = self._collect(
            lambda token: syncer.list(parent_id, token),
            f"List {resource_type.id}{scope}"
        )

        for resource in resources:
            graph.add_resource(resource)
            details['resources'] += 1
            self.sync_stats['resources'] += 1

            if resource_type.skip_entitlements_and_grants:
                continue

            entitlements = self._collect(
                lambda token, r=resource: syncer.entitlements(r, token),
                f"Entitlements of {resource.key}"
            )
            for entitlement in entitlements:
                graph.add_entitlement(entitlement)
            details['entitlements'] += len(entitlements)
            self.sync_stats['entitlements'] += len(entitlements)

            grants = self._collect(
                lambda token, r=resource: syncer.grants(r, token),
                f"Grants of {resource.key}"
            )
            for grant in grants:
                graph.add_grant(grant)
            details['grants'] += len(grants)
            self.sync_stats['grants'] += len(grants)

        logger.info(f"Synced {len(resources)} {resource_type.id} resources{scope}")
        return resources

    def _check_graph(self, graph: SyncGraph):
        dangling = graph.dangling_grants()
        if dangling:
            for grant in dangling[:10]:
                logger.error(f"Dangling grant: {grant.id}")
            raise SyncError(f"{len(dangling)} grants reference resources that were not synced")

    def _write_output(self, graph: SyncGraph):
        output_file = self.config.get('sync', {}).get('output_file', DEFAULT_OUTPUT_FILE)

        document = graph.to_dict()
        document['metadata'] = self.connector.metadata()
        document['synced_at'] = datetime.now().isoformat()

        with open(output_file, 'w', encoding='utf-8') as f:
            json.dump(document, f, indent=2)

        logger.info(f"Wrote sync graph to {output_file}")

    def _log_sync_summary(self):
        """Log final synchronization statistics."""
        stats = self.sync_stats

        runtime_str = f"{stats['runtime_seconds']:.2f} seconds"
        if stats['runtime_seconds'] > 60:
            minutes = int(stats['runtime_seconds'] // 60)
            seconds = stats['runtime_seconds'] % 60
            runtime_str = f"{minutes}m {seconds:.1f}s"

        logger.info("=== Sync Summary ===")
        logger.info(f"Total runtime: {runtime_str}")
        logger.info(f"Pages fetched: {stats['pages_fetched']}")
        logger.info(f"Resources: {stats['resources']}")
        logger.info(f"Entitlements: {stats['entitlements']}")
        logger.info(f"Grants: {stats['grants']}")

        for type_id, type_stats in stats['type_details'].items():
            logger.info(f"--- {type_id} ---")
            logger.info(f"  Resources: {type_stats['resources']}")
            logger.info(f"  Entitlements: {type_stats['entitlements']}")
            logger.info(f"  Grants: {type_stats['grants']}")

    def grant(self, entitlement_id: str, principal_type: str, principal_id: str,
              deployment: Optional[str] = None) -> int:
        """Grant one entitlement; returns an exit code like ``run``."""
        return self._mutate('grant', entitlement_id, principal_type, principal_id, deployment)

    def revoke(self, entitlement_id: str, principal_type: str, principal_id: str,
               deployment: Optional[str] = None) -> int:
        return self._mutate('revoke', entitlement_id, principal_type, principal_id, deployment)

    def _mutate(self, operation: str, entitlement_id: str, principal_type: str, principal_id: str,
                deployment: Optional[str]) -> int:
        try:
            self._load_configuration()
            self._setup_logging()
            self._connect()

            action = self.connector.grant if operation == 'grant' else self.connector.revoke
            action(entitlement_id, principal_type, principal_id, deployment)

            logger.info(f"{operation.capitalize()} of {entitlement_id} for {principal_type}:{principal_id} completed")
            return 0

        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            return 2
        except AuthenticationError as e:
            logger.error(f"Authentication error: {e}")
            return 3
        except (MutationError, MappingError) as e:
            logger.error(f"{operation.capitalize()} rejected: {e}")
            return 1
        except Exception as e:
            logger.error(f"Unexpected error: {e}", exc_info=True)
            return 4
        finally:
            self._cleanup()

    def health_check(self) -> Dict[str, Any]:
        """
        Perform a health check of the sync system.

        Returns:
            Dictionary containing health status and details
        """
        health_status = {
            'status': 'healthy',
            'timestamp': datetime.now().isoformat(),
            'checks': {}
        }

        try:
            self._load_configuration()
            health_status['checks']['configuration'] = {
                'status': 'pass',
                'message': 'Configuration loaded successfully'
            }
        except Exception as e:
            health_status['checks']['configuration'] = {
                'status': 'fail',
                'message': f'Configuration error: {e}'
            }
            health_status['status'] = 'unhealthy'

        if self.config:
            deployment_checks = {}
            try:
                self._connect()
                for deployment in self.connector.deployments:
                    client = self.connector.client.for_tenant(deployment)
                    try:
                        client.list_users(1)
                        deployment_checks[deployment] = {
                            'status': 'pass',
                            'message': 'Splunk API reachable'
                        }
                    except BackendError as e:
                        deployment_checks[deployment] = {
                            'status': 'fail',
                            'message': f'Splunk API request failed: {e}'
                        }
                        health_status['status'] = 'unhealthy'
                    finally:
                        client.close_connection()
            except Exception as e:
                deployment_checks['client'] = {
                    'status': 'fail',
                    'message': f'Client setup failed: {e}'
                }
                health_status['status'] = 'unhealthy'
            finally:
                self._cleanup()

            health_status['checks']['deployments'] = deployment_checks

        return health_status

    def _cleanup(self):
        """Clean up resources."""
        if self.connector:
            self.connector.close()
            self.connector = None


def parse_principal(value: str) -> Tuple[str, str]:
    """Split a 'TYPE:ID' principal reference."""
    principal_type, sep, principal_id = value.partition(':')
    if not sep or not principal_type or not principal_id:
        raise ValueError(f"Principal must look like TYPE:ID, got '{value}'")
    return principal_type, principal_id


def main():
    """Main entry point for the application."""
    import argparse

    parser = argparse.ArgumentParser(description='Splunk Sync Application')
    parser.add_argument('--config', '-c', help='Path to configuration file')
    parser.add_argument('--health-check', action='store_true',
                        help='Perform health check instead of sync')
    parser.add_argument('--grant', metavar='ENTITLEMENT_ID',
                        help='Grant an entitlement (e.g. role:admin:member) to --principal')
    parser.add_argument('--revoke', metavar='ENTITLEMENT_ID',
                        help='Revoke an entitlement from --principal')
    parser.add_argument('--principal', metavar='TYPE:ID',
                        help='Principal of a grant or revoke (e.g. user:alice)')
    parser.add_argument('--deployment', metavar='NAME',
                        help='Deployment of the principal')

    args = parser.parse_args()

    if args.grant and args.revoke:
        parser.error('--grant and --revoke are mutually exclusive')

    orchestrator = SyncOrchestrator(config_path=args.config)

    if args.health_check:
        health_status = orchestrator.health_check()
        print(json.dumps(health_status, indent=2))

        if health_status['status'] != 'healthy':
            sys.exit(1)
        else:
            sys.exit(0)

    elif args.grant or args.revoke:
        if not args.principal:
            parser.error('--principal is required with --grant and --revoke')
        try:
            principal_type, principal_id = parse_principal(args.principal)
        except ValueError as e:
            parser.error(str(e))

        if args.grant:
            exit_code = orchestrator.grant(args.grant, principal_type, principal_id, args.deployment)
        else:
            exit_code = orchestrator.revoke(args.revoke, principal_type, principal_id, args.deployment)
        sys.exit(exit_code)

    else:
        exit_code = orchestrator.run()
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
