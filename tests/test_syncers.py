#!/usr/bin/env python3
"""
Unit tests for the resource syncers.

Tests listing, entitlement derivation and grant derivation against an
in-memory Splunk backend.
"""

import json
import unittest
import sys
import os

# Add parent directory and this directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from splunk_fakes import Deployment, FakeSplunkClient, make_application, make_role, make_user
from splunk_sync.models import User
from splunk_sync.pagination import CursorError
from splunk_sync.resources import (
    MappingError, ResourceId, deployment_resource, role_resource,
)
from splunk_sync.syncers import ApplicationSyncer, DeploymentSyncer, RoleSyncer, UserSyncer

DEPLOYMENT_ID = ResourceId('deployment', 'splunk-a')


def collect(call):
    """Page a syncer call until its token runs out."""
    items, token = [], ''
    while True:
        page, token, _ = call(token)
        items.extend(page)
        if not token:
            return items


class TestUserSyncer(unittest.TestCase):
    """Test cases for UserSyncer."""

    def setUp(self):
        users = [make_user(f'u{i:03d}', roles=['user']) for i in range(120)]
        self.client = FakeSplunkClient({'splunk-a': Deployment(users=users)})
        self.syncer = UserSyncer(self.client, page_size=50)

    def test_list_three_pages(self):
        first, token, _ = self.syncer.list(DEPLOYMENT_ID)
        self.assertEqual(len(first), 50)
        self.assertEqual(json.loads(token)['current_state']['token'], '1')

        second, token, _ = self.syncer.list(DEPLOYMENT_ID, token)
        self.assertEqual(len(second), 50)
        self.assertEqual(json.loads(token)['current_state']['token'], '2')

        third, token, _ = self.syncer.list(DEPLOYMENT_ID, token)
        self.assertEqual(len(third), 20)
        self.assertEqual(token, '')

        names = [r.id.resource for r in first + second + third]
        self.assertEqual(len(set(names)), 120)

    def test_list_sets_parent(self):
        resources, _, _ = self.syncer.list(DEPLOYMENT_ID)
        self.assertTrue(all(r.parent_resource_id == DEPLOYMENT_ID for r in resources))

    def test_list_at_root_is_empty(self):
        self.assertEqual(self.syncer.list(None), ([], '', {}))
        self.assertEqual(self.client.requests, [])

    def test_no_entitlements_or_grants(self):
        resources, _, _ = self.syncer.list(DEPLOYMENT_ID)
        self.assertEqual(self.syncer.entitlements(resources[0]), ([], '', {}))
        self.assertEqual(self.syncer.grants(resources[0]), ([], '', {}))

    def test_malformed_token(self):
        with self.assertRaises(CursorError):
            self.syncer.list(DEPLOYMENT_ID, 'not-a-token')

    def test_malformed_record_is_skipped(self):
        self.client.state.users.insert(0, User(id='broken', name='broken'))

        with self.assertLogs('splunk_sync.syncers.base', level='WARNING') as logs:
            resources = collect(lambda t: self.syncer.list(DEPLOYMENT_ID, t))

        self.assertEqual(len(resources), 120)
        self.assertIn('broken', logs.output[0])

    def test_lists_the_parent_deployment(self):
        self.client.deployments['splunk-b'] = Deployment(users=[make_user('other')])

        resources, _, _ = self.syncer.list(ResourceId('deployment', 'splunk-b'))

        self.assertEqual([r.id.resource for r in resources], ['other'])
        self.assertEqual(self.client.requests[-1][0], 'splunk-b')


class TestRoleSyncer(unittest.TestCase):
    """Test cases for RoleSyncer."""

    def setUp(self):
        self.state = Deployment(
            users=[
                make_user('alice', roles=['admin']),
                make_user('bob', roles=['admin_two']),
                make_user('carol', roles=['user', 'admin']),
                make_user('dave', roles=['user']),
            ],
            roles=[
                make_role('r1', capabilities=['edit_x'], imported=['view_y']),
                make_role('admin', capabilities=['admin_all_objects']),
            ],
        )
        self.client = FakeSplunkClient({'splunk-a': self.state})
        self.syncer = RoleSyncer(self.client, page_size=2)

    def role(self, name):
        return role_resource(self.client.get_role(name), DEPLOYMENT_ID)

    def test_list(self):
        resources = collect(lambda t: self.syncer.list(DEPLOYMENT_ID, t))
        self.assertEqual([r.id.resource for r in resources], ['r1', 'admin'])

    def test_entitlements_member_then_capabilities(self):
        entitlements, token, _ = self.syncer.entitlements(self.role('r1'))

        self.assertEqual(token, '')
        self.assertEqual([e.id for e in entitlements], ['role:r1:member', 'role:r1:edit_x', 'role:r1:view_y'])
        self.assertEqual(entitlements[0].purpose, 'assignment')
        self.assertEqual([e.purpose for e in entitlements[1:]], ['permission', 'permission'])
        self.assertTrue(all(e.grantable_to == ('user',) for e in entitlements))

    def test_grants_confirm_membership(self):
        grants = collect(lambda t: self.syncer.grants(self.role('admin'), t))

        principals = sorted(g.principal.id.resource for g in grants)
        self.assertEqual(principals, ['alice', 'carol'])
        self.assertTrue(all(g.entitlement.slug == 'member' for g in grants))
        self.assertTrue(all(g.principal.parent_resource_id == DEPLOYMENT_ID for g in grants))

    def test_grants_page_through_users(self):
        first, token, _ = self.syncer.grants(self.role('admin'))
        self.assertNotEqual(token, '')

        rest = collect(lambda t: self.syncer.grants(self.role('admin'), t or token))
        self.assertEqual(len(first) + len(rest), 2)


class TestApplicationSyncer(unittest.TestCase):
    """Test cases for ApplicationSyncer."""

    def setUp(self):
        self.state = Deployment(
            users=[
                make_user('u1', roles=['admin']),
                make_user('u2', roles=['guest']),
                make_user('u3', roles=['admin', 'power']),
            ],
            applications=[
                make_application('app1', read=['admin'], write=['*']),
                make_application('app2', read=['admin', 'power'], write=['nobody']),
            ],
        )
        self.client = FakeSplunkClient({'splunk-a': self.state})
        self.syncer = ApplicationSyncer(self.client, page_size=50)
        self.apps = {r.id.resource: r for r in collect(lambda t: self.syncer.list(DEPLOYMENT_ID, t))}

    def pairs(self, app):
        grants = collect(lambda t: self.syncer.grants(self.apps[app], t))
        return [(g.entitlement.slug, g.principal.id.resource) for g in grants]

    def test_entitlements(self):
        entitlements, _, _ = self.syncer.entitlements(self.apps['app1'])
        self.assertEqual([e.id for e in entitlements], ['application:app1:read', 'application:app1:write'])

    def test_grants_with_wildcard(self):
        pairs = self.pairs('app1')

        self.assertIn(('read', 'u1'), pairs)
        self.assertIn(('write', 'u1'), pairs)
        self.assertIn(('write', 'u2'), pairs)
        self.assertNotIn(('read', 'u2'), pairs)

    def test_one_grant_per_permission_per_user(self):
        pairs = self.pairs('app2')

        # u3 matches read through two roles
        self.assertEqual(pairs.count(('read', 'u3')), 1)
        self.assertEqual(sorted(pairs), [('read', 'u1'), ('read', 'u3')])

    def test_grants_need_application_profile(self):
        with self.assertRaises(MappingError):
            self.syncer.grants(deployment_resource('splunk-a'))


class TestDeploymentSyncer(unittest.TestCase):
    """Test cases for DeploymentSyncer."""

    def setUp(self):
        self.state = Deployment(
            roles=[
                make_role('r1', capabilities=['edit_x'], imported=['view_y']),
                make_role('r2', capabilities=['search', 'edit_x']),
            ],
            capabilities=['edit_x', 'search', 'view_y'],
        )
        self.client = FakeSplunkClient({'splunk-a': self.state, 'splunk-b': Deployment()})

    def test_list_only_at_root(self):
        syncer = DeploymentSyncer(self.client, ['splunk-a', 'splunk-b'])

        resources, token, _ = syncer.list(None)

        self.assertEqual([r.id.resource for r in resources], ['splunk-a', 'splunk-b'])
        self.assertEqual(token, '')
        self.assertEqual(syncer.list(DEPLOYMENT_ID), ([], '', {}))

    def test_not_verbose_has_no_entitlements(self):
        syncer = DeploymentSyncer(self.client, ['splunk-a'], verbose=False)
        resource = deployment_resource('splunk-a')

        self.assertEqual(syncer.entitlements(resource), ([], '', {}))
        self.assertEqual(syncer.grants(resource), ([], '', {}))
        self.assertEqual(self.client.requests, [])

    def test_verbose_entitlements(self):
        syncer = DeploymentSyncer(self.client, ['splunk-a'], verbose=True)

        entitlements = collect(lambda t: syncer.entitlements(deployment_resource('splunk-a'), t))

        self.assertEqual([e.slug for e in entitlements], ['edit_x', 'search', 'view_y'])
        self.assertTrue(all(e.grantable_to == ('role',) for e in entitlements))

    def test_verbose_grants_use_own_capabilities(self):
        syncer = DeploymentSyncer(self.client, ['splunk-a'], verbose=True, page_size=1)

        grants = collect(lambda t: syncer.grants(deployment_resource('splunk-a'), t))

        pairs = sorted((g.entitlement.slug, g.principal.id.resource) for g in grants)
        self.assertEqual(pairs, [('edit_x', 'r1'), ('edit_x', 'r2'), ('search', 'r2')])
        self.assertTrue(all(g.principal.parent_resource_id == DEPLOYMENT_ID for g in grants))

    def test_verbose_grants_skip_capabilities_not_listed(self):
        self.state.roles.append(make_role('r3', capabilities=['not_grantable', 'search']))
        syncer = DeploymentSyncer(self.client, ['splunk-a'], verbose=True, page_size=1)
        resource = deployment_resource('splunk-a')

        with self.assertLogs('splunk_sync.syncers.deployment', level='WARNING') as logs:
            grants = collect(lambda t: syncer.grants(resource, t))
        entitlements = collect(lambda t: syncer.entitlements(resource, t))

        slugs = {e.slug for e in entitlements}
        self.assertTrue(all(g.entitlement.slug in slugs for g in grants))
        self.assertIn(('search', 'r3'), [(g.entitlement.slug, g.principal.id.resource) for g in grants])
        self.assertIn("capability 'not_grantable' to role r3", logs.output[0])


if __name__ == '__main__':
    unittest.main()
