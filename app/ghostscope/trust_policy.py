"""
GhostScope Trust Policy Engine

Resolves an accessor's effective trust from the owner's configuration and
renders a memory at the disclosure tier that trust entitles them to.
Everything here is pure: no I/O, inputs are never mutated.
"""
from typing import List, Optional

from app.ghostscope.core_types import (
    EnforcementMode,
    GhostConfig,
    Location,
    Memory,
    DisclosureResult,
    SearchFilters,
    TrustTier,
)


# Descending; the first threshold <= trust wins.
TRUST_THRESHOLDS = [
    (1.0, TrustTier.FULL_ACCESS),
    (0.75, TrustTier.PARTIAL_ACCESS),
    (0.5, TrustTier.SUMMARY_ONLY),
    (0.25, TrustTier.METADATA_ONLY),
    (0.0, TrustTier.EXISTENCE_ONLY),
]

MAX_TRUST = 1.0

EXISTENCE_MESSAGE = "A memory exists about this topic."
NO_SUMMARY_MESSAGE = "(No summary available)"

TRUST_INSTRUCTIONS = {
    TrustTier.FULL_ACCESS: "You have full access to this memory. Share its content and details freely.",
    TrustTier.PARTIAL_ACCESS: (
        "You have partial access. Share the main content but do not reveal locations, "
        "the people involved, or linked references."
    ),
    TrustTier.SUMMARY_ONLY: (
        "You have summary-level access. Share the title and summary only, never the full content."
    ),
    TrustTier.METADATA_ONLY: (
        "You have metadata-level access. You may mention the memory's type and tags but nothing it says."
    ),
    TrustTier.EXISTENCE_ONLY: (
        "You may only acknowledge that a memory exists about this topic. Reveal no details."
    ),
}


class TrustPolicyEngine:
    """
    Trust Policy Engine - graduated disclosure.

    Features:
    - Per-user trust overrides, friend and public defaults
    - Five disclosure tiers, strictly descending in content
    - Self-access always sees everything
    - Memories requiring maximum trust are owner-exclusive
    """

    def resolve_accessor_trust(
        self,
        config: GhostConfig,
        accessor_id: str,
        is_friend: bool = False,
    ) -> float:
        """
        Effective trust the owner extends to an accessor.

        Args:
            config: The owner's trust configuration
            accessor_id: User asking for access
            is_friend: Whether the accessor is a friend of the owner

        Returns:
            Trust in [0, 1]
        """
        if accessor_id in config.per_user_trust:
            return config.per_user_trust[accessor_id]
        if is_friend:
            return config.default_friend_trust
        return config.default_public_trust or 0.0

    def is_trust_sufficient(self, required_trust: float, accessor_trust: float) -> bool:
        return accessor_trust >= required_trust

    def get_trust_level_label(self, trust: float) -> TrustTier:
        """Map a trust value straight to its threshold tier."""
        for threshold, tier in TRUST_THRESHOLDS:
            if trust >= threshold:
                return tier
        return TrustTier.EXISTENCE_ONLY

    def get_trust_instructions(self, tier: TrustTier) -> str:
        return TRUST_INSTRUCTIONS[tier]

    def disclosure_tier(self, memory: Memory, accessor_trust: float, is_self: bool) -> TrustTier:
        if is_self:
            return TrustTier.FULL_ACCESS
        # Owner-exclusive content
        if memory.trust >= MAX_TRUST:
            return TrustTier.EXISTENCE_ONLY
        return self.get_trust_level_label(accessor_trust)

    def render_for_disclosure(
        self,
        memory: Memory,
        accessor_trust: float,
        is_self: bool = False,
    ) -> DisclosureResult:
        """
        Render a memory at the tier the accessor is entitled to.

        Args:
            memory: Memory to render
            accessor_trust: Accessor's effective trust
            is_self: Whether the accessor owns the memory

        Returns:
            DisclosureResult with the tier and rendered text
        """
        tier = self.disclosure_tier(memory, accessor_trust, is_self)

        if tier == TrustTier.FULL_ACCESS:
            content = self._render_full(memory)
        elif tier == TrustTier.PARTIAL_ACCESS:
            content = self._render_partial(self.redact_sensitive_fields(memory))
        elif tier == TrustTier.SUMMARY_ONLY:
            content = "\n".join([self._heading(memory), memory.summary or NO_SUMMARY_MESSAGE])
        elif tier == TrustTier.METADATA_ONLY:
            lines = [f"[{memory.type}]"]
            if memory.tags:
                lines.append(f"Tags: {', '.join(memory.tags)}")
            content = "\n".join(lines)
        else:
            content = EXISTENCE_MESSAGE

        return DisclosureResult(memory_id=memory.id, tier=tier, content=content)

    def redact_sensitive_fields(self, memory: Memory) -> Memory:
        """Return a copy without location, participant context or references."""
        redacted = memory.model_copy(deep=True)
        redacted.location = Location(
            gps=None,
            address=None,
            source="unavailable",
            confidence=0.0,
            is_approximate=True,
        )
        if redacted.context is not None:
            redacted.context.participants = None
            redacted.context.environment = None
            redacted.context.notes = None
        redacted.references = None
        return redacted

    def build_trust_filter(
        self,
        accessor_trust: float,
        base: Optional[SearchFilters] = None,
    ) -> SearchFilters:
        """Search filter that only matches memories with trust <= accessor_trust."""
        filters = base.model_copy() if base is not None else SearchFilters()
        if filters.max_trust is None or filters.max_trust > accessor_trust:
            filters.max_trust = accessor_trust
        return filters

    def resolve_enforcement_mode(self, config: Optional[GhostConfig]) -> EnforcementMode:
        if config is None:
            return EnforcementMode.QUERY
        return config.enforcement_mode or EnforcementMode.QUERY

    def _heading(self, memory: Memory) -> str:
        return f"[{memory.type}] {memory.title or 'Untitled'}"

    def _render_full(self, memory: Memory) -> str:
        lines: List[str] = [self._heading(memory), memory.content]
        if memory.summary:
            lines.append(f"Summary: {memory.summary}")
        if memory.tags:
            lines.append(f"Tags: {', '.join(memory.tags)}")
        lines.append(f"Created: {memory.created_at.isoformat()}")
        return "\n".join(lines)

    def _render_partial(self, memory: Memory) -> str:
        lines: List[str] = [self._heading(memory), memory.content]
        if memory.tags:
            lines.append(f"Tags: {', '.join(memory.tags)}")
        return "\n".join(lines)
