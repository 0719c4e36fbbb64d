"""Data access layer.

Repositories wrap the request-scoped AsyncSession and expose the queries the
services need.
"""
