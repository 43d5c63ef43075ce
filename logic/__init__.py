"""
Application Logic Layer for the Ahmo Wall board core

This module provides the board-level components that sit between the
infrastructure (document store, object storage, identity) and the view:
access control, guest identity, ordering, moderation, polls and the live
board sync engine.
"""

from logic.access_control import AccessControlGate, AccessDecision, AccessResult
from logic.board_manager import BoardManager
from logic.guest_identity import GuestIdentityResolver
from logic.moderation_manager import ApprovalReport, ModerationWorkflow
from logic.ordering import OrderingReconciler, SortMode
from logic.poll_engine import PollEngine
from logic.sync_engine import BoardMirror, BoardSyncEngine, EditBuffers, PostDraft

__all__ = [
    'AccessControlGate',
    'AccessDecision',
    'AccessResult',
    'BoardManager',
    'GuestIdentityResolver',
    'ApprovalReport',
    'ModerationWorkflow',
    'OrderingReconciler',
    'SortMode',
    'PollEngine',
    'BoardMirror',
    'BoardSyncEngine',
    'EditBuffers',
    'PostDraft',
]
