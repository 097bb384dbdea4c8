"""
GhostScope Publication Workflow

Publishes memories into shared spaces and groups. publish/retract/revise
only validate and issue a confirmation token; the mutation runs when the
token is confirmed. Moderation changes visibility directly.

Spaces share a single copy in the public spaces collection (its space_ids
list the spaces it is visible in); each group gets its own copy in the
group's collection. Copies are addressed by "{owner_id}.{memory_id}".
"""
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from app.errors import (
    AuthorizationError,
    ConflictError,
    ModeratorRequiredError,
    NotFoundError,
    PublicationError,
    ValidationError,
)
from app.sanitization import sanitize_destination_id, sanitize_memory_id, sanitize_tags
from app.ghostscope.access_control import (
    CredentialsProvider,
    can_moderate,
    can_moderate_any,
    can_revise,
)
from app.ghostscope.composite_ids import (
    SPACES_COLLECTION,
    add_ids,
    build_composite_id,
    group_collection_name,
    is_composite_id,
    user_collection_name,
)
from app.ghostscope.confirmation import ConfirmationTokenService
from app.ghostscope.core_types import (
    MODERATION_ACTION_STATUS,
    ConfirmationAction,
    ConfirmationRequest,
    DeletedFilter,
    DestinationFailure,
    DocType,
    Memory,
    ModerationAction,
    ModerationResult,
    ModerationStatus,
    PendingConfirmation,
    PublishedMemory,
    PublishResult,
    QueryResult,
    RetractResult,
    RevisionEntry,
    RevisionLocationResult,
    ReviseResult,
    SearchFilters,
    SearchResult,
    UserCredentials,
    WriteMode,
)
from app.ghostscope.memory_store import MemoryCollection, MemoryStore
from app.ghostscope.space_config import SpaceConfigStore, get_group_config, get_space_config

logger = logging.getLogger(__name__)

MAX_REVISION_HISTORY = 10
ALREADY_PUBLISHED_ERROR = "Already published here; use revise() to update it"
DEFAULT_SEARCH_LIMIT = 10
SPACE_DISPLAY_NAMES = {"the_void": "The Void"}


def space_display_name(space_id: str) -> str:
    return SPACE_DISPLAY_NAMES.get(space_id, space_id.replace("_", " ").title())


class PublicationWorkflow:
    """
    Publication Workflow - publish, retract, revise and moderate shared copies.

    Features:
    - Two-phase confirm: nothing changes until the token is confirmed
    - Per-destination results; failures are reported, never hidden
    - Moderation gate from space/group configuration
    - Revision history on published copies
    """

    def __init__(
        self,
        user_id: str,
        memory_store: MemoryStore,
        token_service: ConfirmationTokenService,
        space_configs: SpaceConfigStore,
        supported_spaces: List[str],
        credentials: Optional[CredentialsProvider] = None,
        default_limit: int = DEFAULT_SEARCH_LIMIT,
    ):
        """
        Initialize the workflow for one caller.

        Args:
            user_id: The caller; owner of the memories being published
            memory_store: Collections for user, space and group memories
            token_service: Confirmation token ledger
            space_configs: Moderation/write-mode settings per space and group
            supported_spaces: Space IDs that can be published to
            credentials: Group memberships provider for moderation and ACL checks
            default_limit: Page size for search and query
        """
        self.user_id = user_id
        self.memory_store = memory_store
        self.token_service = token_service
        self.space_configs = space_configs
        self.supported_spaces = list(supported_spaces)
        self.credentials = credentials
        self.default_limit = default_limit

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def user_collection(self) -> MemoryCollection:
        return self.memory_store.collection(user_collection_name(self.user_id))

    @property
    def spaces_collection(self) -> MemoryCollection:
        return self.memory_store.collection(SPACES_COLLECTION)

    def group_collection(self, group_id: str) -> MemoryCollection:
        return self.memory_store.collection(group_collection_name(group_id))

    def _get_credentials(self, user_id: str) -> UserCredentials:
        if self.credentials is None:
            return UserCredentials(user_id=user_id)
        return self.credentials.get_credentials(user_id)

    def _credentials_fetcher(self) -> Optional[Callable[[str], UserCredentials]]:
        return self.credentials.get_credentials if self.credentials else None

    def _validate_spaces(self, spaces: Optional[List[str]]) -> List[str]:
        spaces = list(dict.fromkeys(spaces or []))
        invalid = [space for space in spaces if space not in self.supported_spaces]
        if invalid:
            supported = ", ".join(
                f"{space_display_name(s)} ({s})" for s in self.supported_spaces
            )
            raise ValidationError(
                f"Invalid space IDs: {', '.join(invalid)}. Supported spaces: {supported}",
                details={"invalid_spaces": invalid},
            )
        return spaces

    def _validate_groups(self, groups: Optional[List[str]]) -> List[str]:
        cleaned = []
        for group_id in groups or []:
            try:
                group_id = sanitize_destination_id(group_id, "group_id")
            except ValueError as e:
                raise ValidationError(f"Invalid group ID {group_id!r}: {e}") from e
            if group_id not in cleaned:
                cleaned.append(group_id)
        return cleaned

    def _validate_destinations(
        self,
        spaces: Optional[List[str]],
        groups: Optional[List[str]],
    ) -> Tuple[List[str], List[str]]:
        if not spaces and not groups:
            raise ValidationError("Must specify at least one space or group")
        return self._validate_spaces(spaces), self._validate_groups(groups)

    def _load_owned_memory(self, memory_id: str, allow_deleted: bool = False) -> Memory:
        try:
            memory_id = sanitize_memory_id(memory_id)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        memory = self.user_collection.get(memory_id)
        if memory is None or (memory.is_deleted and not allow_deleted):
            raise NotFoundError(message=f"Memory {memory_id} not found")
        if memory.user_id != self.user_id:
            raise AuthorizationError("Permission denied: only the memory's owner can do this")
        return memory

    def _pending(self, request: ConfirmationRequest) -> PendingConfirmation:
        return PendingConfirmation(
            token=request.token,
            action=request.action,
            expires_at=request.expires_at,
            payload=request.payload,
        )

    def _require_moderator(self, spaces: List[str], groups: List[str], all_public: bool) -> None:
        credentials = self._get_credentials(self.user_id)
        denied = [f"group:{g}" for g in groups if not can_moderate(credentials, g)]
        if (spaces or all_public) and not can_moderate_any(credentials):
            denied.append("spaces")
        if denied:
            raise ModeratorRequiredError(
                f"Moderator access required to view non-approved or deleted content in: {', '.join(denied)}"
            )

    # ------------------------------------------------------------------
    # Phase one: validate and issue a token
    # ------------------------------------------------------------------

    def publish(
        self,
        memory_id: str,
        spaces: Optional[List[str]] = None,
        groups: Optional[List[str]] = None,
        additional_tags: Optional[List[str]] = None,
    ) -> PendingConfirmation:
        """Validate a publish and issue a publish_memory token."""
        spaces, groups = self._validate_destinations(spaces, groups)
        memory = self._load_owned_memory(memory_id)

        if memory.doc_type != DocType.MEMORY:
            raise ValidationError(
                f"Only memories can be published (got doc_type: {memory.doc_type.value})"
            )

        already_spaces = [s for s in spaces if s in memory.space_ids]
        already_groups = [g for g in groups if g in memory.group_ids]
        if already_spaces or already_groups:
            raise ConflictError(
                "Memory is already published to some destinations. Use revise() to update them.",
                details={"spaces": already_spaces, "groups": already_groups},
            )

        try:
            additional_tags = sanitize_tags(additional_tags)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        request = self.token_service.issue(
            ConfirmationAction.PUBLISH_MEMORY,
            {
                "memory_id": memory.id,
                "spaces": spaces,
                "groups": groups,
                "additional_tags": additional_tags,
            },
            self.user_id,
        )
        return self._pending(request)

    def retract(
        self,
        memory_id: str,
        spaces: Optional[List[str]] = None,
        groups: Optional[List[str]] = None,
    ) -> PendingConfirmation:
        """Validate a retract and issue a retract_memory token."""
        if not spaces and not groups:
            raise ValidationError("Must specify at least one space or group")
        spaces = list(dict.fromkeys(spaces or []))
        groups = self._validate_groups(groups)
        memory = self._load_owned_memory(memory_id, allow_deleted=True)

        missing_spaces = [s for s in spaces if s not in memory.space_ids]
        missing_groups = [g for g in groups if g not in memory.group_ids]
        if missing_spaces or missing_groups:
            parts = []
            if missing_spaces:
                parts.append(f"Not in spaces: {missing_spaces}")
            if missing_groups:
                parts.append(f"Not in groups: {missing_groups}")
            raise ConflictError(
                f"Memory is not published to some destinations. {', '.join(parts)}",
                details={"spaces": missing_spaces, "groups": missing_groups},
            )

        request = self.token_service.issue(
            ConfirmationAction.RETRACT_MEMORY,
            {"memory_id": memory.id, "spaces": spaces, "groups": groups},
            self.user_id,
        )
        return self._pending(request)

    def revise(self, memory_id: str) -> PendingConfirmation:
        """Issue a revise_memory token covering every published copy."""
        memory = self._load_owned_memory(memory_id)
        if not memory.space_ids and not memory.group_ids:
            raise ValidationError(
                "Memory has no published copies to revise. Publish first with publish()."
            )

        request = self.token_service.issue(
            ConfirmationAction.REVISE_MEMORY,
            {
                "memory_id": memory.id,
                "space_ids": list(memory.space_ids),
                "group_ids": list(memory.group_ids),
            },
            self.user_id,
        )
        return self._pending(request)

    # ------------------------------------------------------------------
    # Phase two: confirm or deny
    # ------------------------------------------------------------------

    def confirm(self, token: str):
        """Consume the token and execute its action exactly once."""
        return self.token_service.confirm(
            token,
            self.user_id,
            {
                ConfirmationAction.PUBLISH_MEMORY: self._execute_publish,
                ConfirmationAction.RETRACT_MEMORY: self._execute_retract,
                ConfirmationAction.REVISE_MEMORY: self._execute_revise,
            },
        )

    def deny(self, token: str) -> None:
        self.token_service.deny(token, self.user_id)

    def _build_copy(
        self,
        memory: Memory,
        composite_id: str,
        tags: List[str],
        now: datetime,
        space_ids: List[str],
        group_ids: List[str],
        moderation_status: ModerationStatus,
        write_mode: WriteMode,
    ) -> PublishedMemory:
        data = memory.model_dump(exclude={"id", "space_ids", "group_ids", "version", "updated_at"})
        data.update(
            id=composite_id,
            tags=tags,
            space_ids=space_ids,
            group_ids=group_ids,
            source_memory_id=memory.id,
            author_id=memory.user_id,
            write_mode=write_mode,
            moderation_status=moderation_status,
            published_at=now,
            discovery_count=0,
            attribution="user",
        )
        return PublishedMemory(**data)

    def _publish_to_spaces(
        self,
        memory: Memory,
        composite_id: str,
        tags: List[str],
        spaces: List[str],
        now: datetime,
    ) -> None:
        configs = [get_space_config(self.space_configs, space) for space in spaces]
        requires_moderation = any(config.require_moderation for config in configs)
        collection = self.spaces_collection
        existing = collection.get(composite_id)

        if existing is not None and not existing.is_deleted:
            # Already visible in other spaces: extend the shared copy
            changes = {"content": memory.content, "title": memory.title, "summary": memory.summary,
                       "tags": add_ids(existing.tags, tags)}
            if requires_moderation:
                changes["moderation_status"] = ModerationStatus.PENDING
            collection.update(composite_id, changes)
            collection.update_tracking(composite_id, add_spaces=spaces)
            return

        collection.upsert(self._build_copy(
            memory,
            composite_id,
            tags,
            now,
            space_ids=spaces,
            group_ids=[],
            moderation_status=ModerationStatus.PENDING if requires_moderation else ModerationStatus.APPROVED,
            write_mode=configs[0].default_write_mode,
        ))

    def _publish_to_group(
        self,
        memory: Memory,
        composite_id: str,
        tags: List[str],
        group_id: str,
        now: datetime,
    ) -> None:
        config = get_group_config(self.space_configs, group_id)
        self.group_collection(group_id).upsert(self._build_copy(
            memory,
            composite_id,
            tags,
            now,
            space_ids=[],
            group_ids=[group_id],
            moderation_status=ModerationStatus.PENDING if config.require_moderation else ModerationStatus.APPROVED,
            write_mode=config.default_write_mode,
        ))

    def _live_destinations(
        self,
        memory: Memory,
        composite_id: str,
        spaces: List[str],
        groups: List[str],
    ) -> Tuple[List[str], List[str]]:
        """Requested destinations that already hold a live copy of the memory."""
        shared = self.spaces_collection.get(composite_id)
        live_spaces = set(memory.space_ids)
        if shared is not None and not shared.is_deleted:
            live_spaces.update(shared.space_ids)

        taken_groups = []
        for group_id in groups:
            copy = self.group_collection(group_id).get(composite_id)
            if group_id in memory.group_ids or (copy is not None and not copy.is_deleted):
                taken_groups.append(group_id)
        return [s for s in spaces if s in live_spaces], taken_groups

    def _execute_publish(self, request: ConfirmationRequest) -> PublishResult:
        payload = request.payload
        memory = self._load_owned_memory(payload["memory_id"])
        spaces = payload.get("spaces", [])
        groups = payload.get("groups", [])
        composite_id = build_composite_id(self.user_id, memory.id)
        tags = add_ids(memory.tags, payload.get("additional_tags", []))
        now = datetime.utcnow()

        published_to: List[str] = []
        failed: List[DestinationFailure] = []
        published_spaces: List[str] = []
        published_groups: List[str] = []

        # Another token may have published here since this one was issued
        taken_spaces, taken_groups = self._live_destinations(memory, composite_id, spaces, groups)
        for location in [f"space:{s}" for s in taken_spaces] + [f"group:{g}" for g in taken_groups]:
            logger.warning(f"{composite_id} is already published to {location}; not overwriting")
            failed.append(DestinationFailure(location=location, error=ALREADY_PUBLISHED_ERROR))
        spaces = [s for s in spaces if s not in taken_spaces]
        groups = [g for g in groups if g not in taken_groups]

        if spaces:
            try:
                self._publish_to_spaces(memory, composite_id, tags, spaces, now)
            except Exception as e:
                logger.error(f"Publish to spaces failed for {composite_id}: {e}", exc_info=True)
                failed.extend(DestinationFailure(location=f"space:{s}", error=str(e)) for s in spaces)
            else:
                published_spaces = list(spaces)
                published_to.extend(f"space:{s}" for s in spaces)

        for group_id in groups:
            try:
                self._publish_to_group(memory, composite_id, tags, group_id, now)
            except Exception as e:
                logger.error(f"Publish to group {group_id} failed for {composite_id}: {e}", exc_info=True)
                failed.append(DestinationFailure(location=f"group:{group_id}", error=str(e)))
            else:
                published_groups.append(group_id)
                published_to.append(f"group:{group_id}")

        if not published_to:
            raise PublicationError(
                "Failed to publish to any destination",
                details={"failed": [f.model_dump() for f in failed]},
            )

        source = self.user_collection.update_tracking(
            memory.id, add_spaces=published_spaces, add_groups=published_groups
        )
        logger.info(
            f"Memory published as {composite_id}",
            extra={"user_id": self.user_id, "published_to": published_to, "failed": len(failed)},
        )
        return PublishResult(
            success=not failed,
            composite_id=composite_id,
            published_to=published_to,
            failed=failed,
            space_ids=source.space_ids,
            group_ids=source.group_ids,
        )

    def _execute_retract(self, request: ConfirmationRequest) -> RetractResult:
        payload = request.payload
        memory = self._load_owned_memory(payload["memory_id"], allow_deleted=True)
        spaces = payload.get("spaces", [])
        groups = payload.get("groups", [])
        composite_id = build_composite_id(self.user_id, memory.id)
        now = datetime.utcnow()

        retracted_from: List[str] = []
        failed: List[DestinationFailure] = []
        retracted_spaces: List[str] = []
        retracted_groups: List[str] = []

        def retraction(remove_spaces: List[str], remove_groups: List[str]):
            def mutate(copy):
                copy.space_ids = [s for s in copy.space_ids if s not in remove_spaces]
                copy.group_ids = [g for g in copy.group_ids if g not in remove_groups]
                copy.retracted_at = now
                if not copy.space_ids and not copy.group_ids and not copy.is_deleted:
                    copy.deleted_at = now
                    copy.deleted_by = self.user_id
                    copy.deletion_reason = "retracted"
                return copy
            return mutate

        def retract_copy(collection: MemoryCollection, remove_spaces: List[str], remove_groups: List[str]):
            if collection.get(composite_id) is None:
                logger.warning(f"No published copy of {composite_id} in {collection.name}; clearing tracking only")
                return
            collection.mutate(composite_id, retraction(remove_spaces, remove_groups))

        if spaces:
            try:
                retract_copy(self.spaces_collection, spaces, [])
            except Exception as e:
                logger.error(f"Retract from spaces failed for {composite_id}: {e}", exc_info=True)
                failed.extend(DestinationFailure(location=f"space:{s}", error=str(e)) for s in spaces)
            else:
                retracted_spaces = list(spaces)
                retracted_from.extend(f"space:{s}" for s in spaces)

        for group_id in groups:
            try:
                retract_copy(self.group_collection(group_id), [], [group_id])
            except Exception as e:
                logger.error(f"Retract from group {group_id} failed for {composite_id}: {e}", exc_info=True)
                failed.append(DestinationFailure(location=f"group:{group_id}", error=str(e)))
            else:
                retracted_groups.append(group_id)
                retracted_from.append(f"group:{group_id}")

        if not retracted_from:
            raise PublicationError(
                "Failed to retract from any destination",
                details={"failed": [f.model_dump() for f in failed]},
            )

        source = self.user_collection.update_tracking(
            memory.id, remove_spaces=retracted_spaces, remove_groups=retracted_groups
        )
        logger.info(
            f"Memory {composite_id} retracted",
            extra={"user_id": self.user_id, "retracted_from": retracted_from, "failed": len(failed)},
        )
        return RetractResult(
            success=not failed,
            composite_id=composite_id,
            retracted_from=retracted_from,
            failed=failed,
            space_ids=source.space_ids,
            group_ids=source.group_ids,
        )

    def _execute_revise(self, request: ConfirmationRequest) -> ReviseResult:
        payload = request.payload
        memory = self._load_owned_memory(payload["memory_id"])
        composite_id = build_composite_id(self.user_id, memory.id)
        revised_at = datetime.utcnow()
        fetch_credentials = self._credentials_fetcher()

        locations: List[Tuple[MemoryCollection, str]] = []
        if payload.get("space_ids"):
            locations.append((self.spaces_collection, "spaces"))
        for group_id in payload.get("group_ids", []):
            locations.append((self.group_collection(group_id), f"group:{group_id}"))

        def revision(copy: PublishedMemory) -> PublishedMemory:
            if copy.content != memory.content:
                history = [RevisionEntry(content=copy.content, revised_at=revised_at)] + copy.revision_history
                copy.revision_history = history[:MAX_REVISION_HISTORY]
            copy.content = memory.content
            copy.title = memory.title
            copy.summary = memory.summary
            copy.revision_count += 1
            copy.revised_at = revised_at
            return copy

        results: List[RevisionLocationResult] = []
        for collection, label in locations:
            copy = collection.get(composite_id)
            if copy is None or copy.is_deleted:
                results.append(RevisionLocationResult(
                    location=label, status="skipped", error="Published copy not found"
                ))
                continue
            if not can_revise(self.user_id, copy.acl, fetch_credentials):
                results.append(RevisionLocationResult(
                    location=label, status="failed", error="Permission denied: cannot revise this copy"
                ))
                continue
            try:
                updated = collection.mutate(composite_id, revision)
            except Exception as e:
                logger.error(f"Revise of {composite_id} in {label} failed: {e}", exc_info=True)
                results.append(RevisionLocationResult(location=label, status="failed", error=str(e)))
            else:
                results.append(RevisionLocationResult(
                    location=label, status="success", revision_count=updated.revision_count
                ))

        succeeded = sum(1 for r in results if r.status == "success")
        logger.info(
            f"Memory {composite_id} revised",
            extra={"user_id": self.user_id, "succeeded": succeeded, "total": len(results)},
        )
        return ReviseResult(
            success=succeeded > 0,
            composite_id=composite_id,
            revised_at=revised_at,
            locations=results,
        )

    # ------------------------------------------------------------------
    # Moderation
    # ------------------------------------------------------------------

    def _find_copy(self, collection: MemoryCollection, memory_id: str) -> Optional[PublishedMemory]:
        """Find a copy by composite ID or by the ID of the memory it was published from."""
        if is_composite_id(memory_id):
            return collection.get(memory_id)
        candidates = [
            memory for memory, _ in collection.search(None, SearchFilters(include_comments=True))
            if getattr(memory, "source_memory_id", None) == memory_id
        ]
        return candidates[0] if len(candidates) == 1 else None

    def moderate(
        self,
        memory_id: str,
        action: ModerationAction,
        space_id: Optional[str] = None,
        group_id: Optional[str] = None,
    ) -> ModerationResult:
        """Approve, reject or remove a published copy. Requires moderator standing."""
        if bool(space_id) == bool(group_id):
            raise ValidationError("Provide exactly one of space_id or group_id")

        credentials = self._get_credentials(self.user_id)
        if group_id:
            group_id = self._validate_groups([group_id])[0]
            location = f"group:{group_id}"
            allowed = can_moderate(credentials, group_id)
            collection = self.group_collection(group_id)
        else:
            space_id = self._validate_spaces([space_id])[0]
            location = f"space:{space_id}"
            allowed = can_moderate_any(credentials)
            collection = self.spaces_collection

        if not allowed:
            raise ModeratorRequiredError(f"Moderator access required to moderate {location}")

        copy = self._find_copy(collection, memory_id)
        if copy is None or copy.is_deleted or (space_id and space_id not in copy.space_ids):
            raise NotFoundError(message=f"Published memory {memory_id} not found in {location}")

        status = MODERATION_ACTION_STATUS[action]
        moderated_at = datetime.utcnow()
        collection.update(copy.id, {
            "moderation_status": status,
            "moderated_by": self.user_id,
            "moderated_at": moderated_at,
        })
        logger.info(
            f"Published memory {copy.id} moderated: {status.value}",
            extra={"user_id": self.user_id, "location": location, "action": action.value},
        )
        return ModerationResult(
            memory_id=copy.id,
            action=action,
            moderation_status=status,
            moderated_by=self.user_id,
            moderated_at=moderated_at,
            location=location,
        )

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def _collect(
        self,
        query: Optional[str],
        spaces: List[str],
        groups: List[str],
        filters: SearchFilters,
    ) -> List[PublishedMemory]:
        scored: Dict[str, Tuple[PublishedMemory, float]] = {}

        targets: List[Tuple[MemoryCollection, SearchFilters]] = []
        if spaces or not groups:
            targets.append((self.spaces_collection, filters.model_copy(update={"space_ids": spaces or None})))
        for group_id in groups:
            targets.append((self.group_collection(group_id), filters))

        for collection, collection_filters in targets:
            for memory, score in collection.search(query, collection_filters):
                best = scored.get(memory.id)
                if best is None or score > best[1]:
                    scored[memory.id] = (memory, score)

        ranked = sorted(scored.values(), key=lambda item: (item[1], item[0].created_at), reverse=True)
        return [memory for memory, _ in ranked]

    def _build_filters(
        self,
        spaces: List[str],
        groups: List[str],
        content_type: Optional[str],
        tags: Optional[List[str]],
        min_weight: Optional[float],
        max_weight: Optional[float],
        date_from: Optional[datetime],
        date_to: Optional[datetime],
        moderation_filter: Optional[ModerationStatus],
        include_comments: bool,
        deleted_filter: DeletedFilter,
    ) -> SearchFilters:
        moderation_filter = moderation_filter or ModerationStatus.APPROVED
        if moderation_filter != ModerationStatus.APPROVED or deleted_filter != DeletedFilter.EXCLUDE:
            self._require_moderator(spaces, groups, all_public=not spaces and not groups)
        return SearchFilters(
            content_types=[content_type] if content_type else None,
            tags=tags or None,
            min_weight=min_weight,
            max_weight=max_weight,
            date_from=date_from,
            date_to=date_to,
            moderation_status=moderation_filter,
            deleted=deleted_filter,
            include_comments=include_comments,
        )

    def search(
        self,
        query: Optional[str] = None,
        spaces: Optional[List[str]] = None,
        groups: Optional[List[str]] = None,
        content_type: Optional[str] = None,
        tags: Optional[List[str]] = None,
        min_weight: Optional[float] = None,
        max_weight: Optional[float] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        moderation_filter: Optional[ModerationStatus] = None,
        include_comments: bool = False,
        deleted_filter: DeletedFilter = DeletedFilter.EXCLUDE,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> SearchResult:
        """
        Search published copies. With no spaces and no groups, every public
        space is searched. Only approved copies are returned by default.
        """
        spaces = self._validate_spaces(spaces)
        groups = self._validate_groups(groups)
        limit = limit or self.default_limit
        if limit < 1 or offset < 0:
            raise ValidationError("limit must be positive and offset non-negative")

        filters = self._build_filters(
            spaces, groups, content_type, tags, min_weight, max_weight,
            date_from, date_to, moderation_filter, include_comments, deleted_filter,
        )
        memories = self._collect(query, spaces, groups, filters)
        return SearchResult(
            spaces_searched=spaces if spaces or groups else "all_public",
            groups_searched=groups,
            memories=memories[offset:offset + limit],
            total=len(memories),
            offset=offset,
            limit=limit,
        )

    def query(
        self,
        question: str,
        spaces: List[str],
        content_type: Optional[str] = None,
        tags: Optional[List[str]] = None,
        min_weight: Optional[float] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        moderation_filter: Optional[ModerationStatus] = None,
        include_comments: bool = False,
        limit: Optional[int] = None,
    ) -> QueryResult:
        """Answer-oriented retrieval over named spaces."""
        if not question or not question.strip():
            raise ValidationError("Question cannot be empty")
        if not spaces:
            raise ValidationError("Must specify at least one space to query")
        spaces = self._validate_spaces(spaces)
        limit = limit or self.default_limit

        filters = self._build_filters(
            spaces, [], content_type, tags, min_weight, None,
            date_from, date_to, moderation_filter, include_comments, DeletedFilter.EXCLUDE,
        )
        memories = self._collect(question, spaces, [], filters)
        return QueryResult(
            question=question,
            spaces_queried=spaces,
            memories=memories[:limit],
            total=len(memories),
        )
