"""FastAPI service exposing Deus Ex augmentations.

This package wires persistence, identity, JWT authentication, API
documentation and middleware around a small set of CRUD endpoints.
"""

__version__ = "1.0.0"
