from .database import Database, Transaction
from .models import Edit, HistoryEntry, Resource, Revision
from .registry import ResourceRegistry
from .revisions import RevisionStore, build_revision, replay_chain

__all__ = [
    "Database",
    "Edit",
    "HistoryEntry",
    "Resource",
    "ResourceRegistry",
    "Revision",
    "RevisionStore",
    "Transaction",
    "build_revision",
    "replay_chain",
]
