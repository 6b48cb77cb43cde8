"""
Platform services: errors, audit logging, tenant context and access guards.
"""
