"""
Models package: draft entities, storage backends and the audit log.
"""
from .audit_model import AuditAction, AuditLog, AuditLogEntry, InMemoryAuditLog
from .draft_model import DraftPick, DraftSession, DraftSettings, DraftStatus, Player, Team
from .draft_store import DraftStore, InMemoryDraftStore, Mutation

__all__ = [
    'AuditAction',
    'AuditLog',
    'AuditLogEntry',
    'InMemoryAuditLog',
    'DraftPick',
    'DraftSession',
    'DraftSettings',
    'DraftStatus',
    'Player',
    'Team',
    'DraftStore',
    'InMemoryDraftStore',
    'Mutation'
]
