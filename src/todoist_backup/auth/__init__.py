"""Authentication module for cloud storage."""

from .cloud_auth import S3Auth

__all__ = ["S3Auth"]
