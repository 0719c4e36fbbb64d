"""
HTTP routers.

Every module in this package exposing a module-level ``router`` is picked up
by the controller registrar. Modules that set ``mount_at_root = True`` are
mounted without the API prefix.
"""
