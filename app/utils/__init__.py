"""Utility helpers for the Media Uploads API.

Submodules:
- file_keys: storage key derivation
- renditions: quality ladder and rendition paths
- upstream: bounded, retried calls to AWS
- aws: S3 object store gateway
"""

__all__: list[str] = []
