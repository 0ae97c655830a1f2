"""Drummer - Core application modules.

Provides the media job pipeline:
- Acquisition of uploaded or remote audio
- Job-scoped scratch workspaces with guaranteed cleanup
- Stem removal via external decomposition and mixing engines
- Commit of the original/processed pair to the metadata store
"""

__version__ = "0.3.0"
