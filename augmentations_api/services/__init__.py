"""Application services: identity, token handling, links, PDF and CSV."""
