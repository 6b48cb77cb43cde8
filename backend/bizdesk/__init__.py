"""
Bizdesk backend: multi-tenant business management API.

The tenant isolation and plan entitlement engine lives in:
- auth: bearer token verification and principal resolution
- entitlements: plan policy table and entitlement evaluation
- repositories: tenant-scoped data access
- platform: request tenant context, RBAC and audit logging
"""

__version__ = "1.0.0"
