"""
Accounts module: users, groups and permissions.

- ``service``: lookups and authentication
- ``forms``: validation and many-to-many replacement for the admin forms
- ``admin``: the generic CRUD resources mounted under /admin
"""
