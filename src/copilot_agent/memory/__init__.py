"""Workspace memory used by the retrieve action."""

from .workspace_index import Chunk, RetrievalHit, WorkspaceIndex, tokenize

__all__ = ["Chunk", "RetrievalHit", "WorkspaceIndex", "tokenize"]
