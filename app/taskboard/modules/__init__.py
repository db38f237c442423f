"""
Feature modules live under this package.

Each module owns its models, forms and routes while reusing the platform
primitives (auth, RBAC, audit, generic views, DB session).
"""
