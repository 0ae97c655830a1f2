"""Drummer - HTTP API service.

FastAPI service wrapping the media job pipeline: upload and remote
processing, listing, download, rename and delete of committed songs.
"""

__all__: list[str] = []
