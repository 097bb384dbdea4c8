"""
GhostScope Package

Trust-gated access to memories and the confirm-to-publish workflow for
shared spaces and groups.
"""
from app.ghostscope.core_types import (
    AccessBlocked,
    AccessDeleted,
    AccessGranted,
    AccessInsufficientTrust,
    AccessNoPermission,
    AccessNotFound,
    AccessResult,
    ConfirmationAction,
    DisclosureResult,
    GhostConfig,
    Memory,
    PublishedACL,
    PublishedMemory,
    TrustTier,
    WriteMode,
    generate_memory_id,
)
from app.ghostscope.access_control import AccessControlService, can_overwrite, can_revise
from app.ghostscope.confirmation import ConfirmationTokenService
from app.ghostscope.escalation import EscalationTracker
from app.ghostscope.publication import PublicationWorkflow
from app.ghostscope.trust_policy import TrustPolicyEngine

__all__ = [
    "AccessBlocked",
    "AccessDeleted",
    "AccessGranted",
    "AccessInsufficientTrust",
    "AccessNoPermission",
    "AccessNotFound",
    "AccessResult",
    "ConfirmationAction",
    "DisclosureResult",
    "GhostConfig",
    "Memory",
    "PublishedACL",
    "PublishedMemory",
    "TrustTier",
    "WriteMode",
    "generate_memory_id",
    "AccessControlService",
    "can_overwrite",
    "can_revise",
    "ConfirmationTokenService",
    "EscalationTracker",
    "PublicationWorkflow",
    "TrustPolicyEngine",
]
