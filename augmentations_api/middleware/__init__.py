"""
HTTP middleware.

The composition root installs these in a fixed order, outermost first:
documentation, authentication, authorization, exception handling, response
caching. Each middleware takes the application's ServiceProvider and resolves
what it needs from it.
"""
