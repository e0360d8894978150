"""
Splunk Sync - Synchronize Splunk users, roles, applications and capabilities into an access graph.

This package lists resources from one or more Splunk deployments, derives the
entitlements and grants between them, and applies role membership and
capability grants back to the Splunk REST API.
"""

__version__ = "1.0.0"
__author__ = "Splunk Sync Team"
