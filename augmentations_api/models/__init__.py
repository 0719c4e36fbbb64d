"""Data models for the Augmentations API.

This package contains SQLAlchemy entities and the Pydantic request/response
models exchanged with clients.
"""
