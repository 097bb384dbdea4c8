"""
GhostScope API v1 Endpoints

Thin REST adapter over the GhostScope services. Every endpoint acts on
behalf of the authenticated caller; services are built per request on the
request's database session.
"""
import logging
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request, status
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.errors import NotFoundError, ModeratorRequiredError, ValidationError
from app.firebase_auth import get_current_user_id
from app.models import AuditEvent
from app.monitoring import capture_message
from app.rate_limit import limiter
from app.sanitization import sanitize_destination_id, sanitize_memory_id, sanitize_tags, sanitize_user_id
from app.schemas import (
    AccessCheckRequest,
    AccessCheckResponse,
    BlockClearedResponse,
    DenyResponse,
    MemoryCreateRequest,
    MemoryCreateResponse,
    ModerateRequest,
    PublishRequest,
    QueryRequest,
    RetractRequest,
    ReviseRequest,
    SearchRequest,
    SetTrustRequest,
    TokenRequest,
    TrustSuggestRequest,
    TrustSuggestResponse,
    TrustValidateRequest,
    WritePermissionRequest,
    WritePermissionResponse,
)
from app.ghostscope.access_control import (
    AccessControlService,
    SqlCredentialsProvider,
    can_moderate,
    can_moderate_any,
    can_overwrite,
    can_revise,
    format_access_result_message,
)
from app.ghostscope.composite_ids import user_collection_name
from app.ghostscope.confirmation import ConfirmationTokenService, SqlConfirmationStore
from app.ghostscope.core_types import (
    AccessBlocked,
    AccessGranted,
    GhostConfig,
    Memory,
    ModerationResult,
    PendingConfirmation,
    QueryResult,
    SearchResult,
    SpaceConfig,
    generate_memory_id,
)
from app.ghostscope.escalation import EscalationTracker, SqlEscalationStore
from app.ghostscope.ghost_config import GhostConfigService, SqlGhostConfigStore
from app.ghostscope.memory_store import SqlMemoryStore
from app.ghostscope.publication import PublicationWorkflow
from app.ghostscope.space_config import SqlSpaceConfigStore, set_group_config, set_space_config
from app.ghostscope.trust_policy import TrustPolicyEngine
from app.ghostscope.trust_validator import (
    TrustValidationResult,
    suggest_trust_level,
    validate_trust_assignment,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["v1"])

_trust_engine = TrustPolicyEngine()


def _clean(sanitizer: Callable[..., str], value: str, *args) -> str:
    """Run a sanitizer, reporting bad input as a 400."""
    try:
        return sanitizer(value, *args)
    except ValueError as e:
        raise ValidationError(str(e)) from e


def create_audit_event(
    db: Session,
    event_type: str,
    user_id: Optional[str] = None,
    target_user_id: Optional[str] = None,
    memory_id: Optional[str] = None,
    reason_code: Optional[str] = None,
    meta: Optional[Dict[str, Any]] = None,
):
    """Create an audit event."""
    event = AuditEvent(
        event_type=event_type,
        user_id=user_id,
        target_user_id=target_user_id,
        memory_id=memory_id,
        reason_code=reason_code,
        meta=meta,
    )
    db.add(event)
    db.commit()


# ============================================================================
# Dependencies
# ============================================================================

def get_ghost_config_service(db: Session = Depends(get_db)) -> GhostConfigService:
    return GhostConfigService(SqlGhostConfigStore(db))


def get_escalation_tracker(db: Session = Depends(get_db)) -> EscalationTracker:
    return EscalationTracker(SqlEscalationStore(db))


def get_access_control(
    db: Session = Depends(get_db),
    config_service: GhostConfigService = Depends(get_ghost_config_service),
    escalation: EscalationTracker = Depends(get_escalation_tracker),
) -> AccessControlService:
    return AccessControlService(
        config_provider=config_service.get_stored_config,
        escalation=escalation,
        trust_engine=_trust_engine,
        memory_store=SqlMemoryStore(db),
    )


def get_publication_workflow(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> PublicationWorkflow:
    return PublicationWorkflow(
        user_id=user_id,
        memory_store=SqlMemoryStore(db),
        token_service=ConfirmationTokenService(SqlConfirmationStore(db)),
        space_configs=SqlSpaceConfigStore(db),
        supported_spaces=settings.get_supported_spaces(),
        credentials=SqlCredentialsProvider(db),
        default_limit=settings.search_default_limit,
    )


# ============================================================================
# Owner trust configuration
# ============================================================================

@router.get(
    "/ghost/config",
    response_model=GhostConfig,
    summary="Get the caller's ghost config",
    tags=["ghost"],
)
def get_ghost_config(
    user_id: str = Depends(get_current_user_id),
    service: GhostConfigService = Depends(get_ghost_config_service),
):
    return service.get_config(user_id)


@router.patch(
    "/ghost/config",
    response_model=GhostConfig,
    responses={400: {"description": "Invalid field or value"}},
    summary="Update the caller's ghost config",
    description="""
    Partial update. Accepted fields: enabled, public_ghost_enabled,
    default_friend_trust, default_public_trust, enforcement_mode.
    """,
    tags=["ghost"],
)
def update_ghost_config(
    update: Dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    service: GhostConfigService = Depends(get_ghost_config_service),
    db: Session = Depends(get_db),
):
    config = service.update_config(user_id, update)
    create_audit_event(db, "GHOST_CONFIG_UPDATE", user_id=user_id, meta={"fields": sorted(update)})
    return config


@router.put("/ghost/trust/{target_user_id}", response_model=GhostConfig, tags=["ghost"])
def set_user_trust(
    target_user_id: str,
    trust_request: SetTrustRequest,
    user_id: str = Depends(get_current_user_id),
    service: GhostConfigService = Depends(get_ghost_config_service),
    db: Session = Depends(get_db),
):
    """Grant a specific user a trust level."""
    target_user_id = _clean(sanitize_user_id, target_user_id)
    config = service.set_user_trust(user_id, target_user_id, trust_request.trust)
    create_audit_event(
        db, "TRUST_SET", user_id=user_id, target_user_id=target_user_id,
        meta={"trust": trust_request.trust},
    )
    return config


@router.delete("/ghost/trust/{target_user_id}", response_model=GhostConfig, tags=["ghost"])
def remove_user_trust(
    target_user_id: str,
    user_id: str = Depends(get_current_user_id),
    service: GhostConfigService = Depends(get_ghost_config_service),
):
    """Fall back to the default trust for a user."""
    return service.remove_user_trust(user_id, _clean(sanitize_user_id, target_user_id))


@router.post("/ghost/block/{target_user_id}", response_model=GhostConfig, tags=["ghost"])
def block_user(
    target_user_id: str,
    user_id: str = Depends(get_current_user_id),
    service: GhostConfigService = Depends(get_ghost_config_service),
    db: Session = Depends(get_db),
):
    target_user_id = _clean(sanitize_user_id, target_user_id)
    config = service.block_user(user_id, target_user_id)
    create_audit_event(db, "USER_BLOCK", user_id=user_id, target_user_id=target_user_id)
    return config


@router.delete("/ghost/block/{target_user_id}", response_model=GhostConfig, tags=["ghost"])
def unblock_user(
    target_user_id: str,
    user_id: str = Depends(get_current_user_id),
    service: GhostConfigService = Depends(get_ghost_config_service),
    db: Session = Depends(get_db),
):
    target_user_id = _clean(sanitize_user_id, target_user_id)
    config = service.unblock_user(user_id, target_user_id)
    create_audit_event(db, "USER_UNBLOCK", user_id=user_id, target_user_id=target_user_id)
    return config


# ============================================================================
# Memories
# ============================================================================

@router.post(
    "/memories",
    response_model=MemoryCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a memory",
    description="Create a memory owned by the caller. Trust is suggested from type and tags when omitted.",
    tags=["memories"],
)
def create_memory(
    memory_request: MemoryCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    tags = _clean(sanitize_tags, memory_request.tags)
    trust = memory_request.trust
    if trust is None:
        trust = suggest_trust_level(memory_request.type, tags)

    validation = validate_trust_assignment(trust)
    if not validation.valid:
        raise ValidationError(validation.error, details={"trust": trust})

    memory = Memory(
        id=generate_memory_id(),
        user_id=user_id,
        doc_type=memory_request.doc_type,
        content=memory_request.content,
        title=memory_request.title,
        summary=memory_request.summary,
        type=memory_request.type,
        weight=memory_request.weight,
        trust=trust,
        location=memory_request.location,
        context=memory_request.context,
        tags=tags,
        references=memory_request.references,
    )
    SqlMemoryStore(db).collection(user_collection_name(user_id)).insert(memory)
    create_audit_event(db, "MEMORY_WRITE", user_id=user_id, memory_id=memory.id)

    return MemoryCreateResponse(memory=memory, trust_warning=validation.warning)


@router.delete(
    "/memories/{memory_id}",
    response_model=Memory,
    responses={404: {"description": "Memory not found"}, 409: {"description": "Already deleted"}},
    summary="Soft-delete a memory",
    tags=["memories"],
)
def delete_memory(
    memory_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    memory_id = _clean(sanitize_memory_id, memory_id)
    collection = SqlMemoryStore(db).collection(user_collection_name(user_id))
    if collection.get(memory_id) is None:
        raise NotFoundError(message=f"Memory {memory_id} not found")

    memory = collection.soft_delete(memory_id, deleted_by=user_id, reason="deleted_by_owner")
    create_audit_event(db, "MEMORY_DELETE", user_id=user_id, memory_id=memory_id)
    return memory


# ============================================================================
# Access
# ============================================================================

@router.post(
    "/access/check",
    response_model=AccessCheckResponse,
    responses={429: {"description": "Rate limit exceeded"}},
    summary="Check access to another user's memory",
    description="""
    Runs the full access decision for the caller against one memory.

    Outcomes: granted, insufficient_trust, blocked, no_permission, not_found,
    deleted. Insufficient trust counts towards a per-memory block.
    When granted, the memory is rendered at the caller's disclosure tier.
    """,
    tags=["access"],
)
@limiter.limit(settings.access_check_rate_limit)
def check_access(
    request: Request,
    check_request: AccessCheckRequest,
    user_id: str = Depends(get_current_user_id),
    access: AccessControlService = Depends(get_access_control),
    db: Session = Depends(get_db),
):
    owner_id = _clean(sanitize_user_id, check_request.owner_id)
    memory_id = _clean(sanitize_memory_id, check_request.memory_id)

    result, disclosure = access.view_memory(user_id, owner_id, memory_id)

    create_audit_event(
        db, "ACCESS_CHECK", user_id=user_id, target_user_id=owner_id,
        memory_id=memory_id, reason_code=result.status.upper(),
    )
    if isinstance(result, AccessBlocked):
        capture_message(
            f"Access blocked on memory {memory_id}",
            level="warning",
            context={"owner_id": owner_id, "accessor_id": user_id, "reason": result.reason},
        )

    return AccessCheckResponse(
        status=result.status,
        message=format_access_result_message(result),
        access_level=result.access_level if isinstance(result, AccessGranted) else None,
        details=result.model_dump(mode="json", exclude={"status", "memory", "access_level"}),
        disclosure=disclosure,
    )


@router.delete(
    "/access/blocks/{accessor_id}/{memory_id}",
    response_model=BlockClearedResponse,
    summary="Lift a per-memory block",
    tags=["access"],
)
def clear_access_block(
    accessor_id: str,
    memory_id: str,
    user_id: str = Depends(get_current_user_id),
    escalation: EscalationTracker = Depends(get_escalation_tracker),
    db: Session = Depends(get_db),
):
    """Owner lifts a block on one of their memories; attempts start over."""
    accessor_id = _clean(sanitize_user_id, accessor_id)
    memory_id = _clean(sanitize_memory_id, memory_id)
    escalation.clear_block(user_id, accessor_id, memory_id)
    create_audit_event(db, "ACCESS_UNBLOCK", user_id=user_id, target_user_id=accessor_id, memory_id=memory_id)
    return BlockClearedResponse(accessor_id=accessor_id, memory_id=memory_id)


@router.post("/access/can-revise", response_model=WritePermissionResponse, tags=["access"])
def check_can_revise(
    permission_request: WritePermissionRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    target = _clean(sanitize_user_id, permission_request.user_id) if permission_request.user_id else user_id
    allowed = can_revise(target, permission_request.acl, SqlCredentialsProvider(db).get_credentials)
    return WritePermissionResponse(user_id=target, allowed=allowed)


@router.post("/access/can-overwrite", response_model=WritePermissionResponse, tags=["access"])
def check_can_overwrite(
    permission_request: WritePermissionRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    target = _clean(sanitize_user_id, permission_request.user_id) if permission_request.user_id else user_id
    allowed = can_overwrite(target, permission_request.acl, SqlCredentialsProvider(db).get_credentials)
    return WritePermissionResponse(user_id=target, allowed=allowed)


# ============================================================================
# Trust helpers
# ============================================================================

@router.post("/trust/validate", response_model=TrustValidationResult, tags=["trust"])
def validate_trust(
    validate_request: TrustValidateRequest,
    user_id: str = Depends(get_current_user_id),
):
    return validate_trust_assignment(validate_request.trust)


@router.post("/trust/suggest", response_model=TrustSuggestResponse, tags=["trust"])
def suggest_trust(
    suggest_request: TrustSuggestRequest,
    user_id: str = Depends(get_current_user_id),
):
    trust = suggest_trust_level(suggest_request.content_type, suggest_request.tags)
    return TrustSuggestResponse(trust=trust, tier=_trust_engine.get_trust_level_label(trust))


# ============================================================================
# Publication
# ============================================================================

@router.post(
    "/spaces/publish",
    response_model=PendingConfirmation,
    summary="Request publication of a memory",
    description="""
    Validates the request and returns a confirmation token. Nothing is
    published until the token is passed to /v1/spaces/confirm.
    """,
    tags=["spaces"],
)
def publish_memory(
    publish_request: PublishRequest,
    workflow: PublicationWorkflow = Depends(get_publication_workflow),
):
    return workflow.publish(
        publish_request.memory_id,
        spaces=publish_request.spaces,
        groups=publish_request.groups,
        additional_tags=publish_request.additional_tags,
    )


@router.post("/spaces/retract", response_model=PendingConfirmation, tags=["spaces"])
def retract_memory(
    retract_request: RetractRequest,
    workflow: PublicationWorkflow = Depends(get_publication_workflow),
):
    """Request retraction of published copies (two-phase)."""
    return workflow.retract(
        retract_request.memory_id,
        spaces=retract_request.spaces,
        groups=retract_request.groups,
    )


@router.post("/spaces/revise", response_model=PendingConfirmation, tags=["spaces"])
def revise_memory(
    revise_request: ReviseRequest,
    workflow: PublicationWorkflow = Depends(get_publication_workflow),
):
    """Request that every published copy be updated to the current content (two-phase)."""
    return workflow.revise(revise_request.memory_id)


@router.post(
    "/spaces/confirm",
    responses={
        409: {"description": "Token invalid, expired or already used"},
        502: {"description": "Every destination failed"},
    },
    summary="Confirm a pending publication action",
    tags=["spaces"],
)
def confirm_action(
    token_request: TokenRequest,
    workflow: PublicationWorkflow = Depends(get_publication_workflow),
    db: Session = Depends(get_db),
):
    result = workflow.confirm(token_request.token)
    create_audit_event(
        db, result.action.upper(), user_id=workflow.user_id,
        memory_id=result.composite_id, reason_code="SUCCESS" if result.success else "PARTIAL",
    )
    return result


@router.post(
    "/spaces/deny",
    response_model=DenyResponse,
    responses={404: {"description": "Token not found or already used"}},
    tags=["spaces"],
)
def deny_action(
    token_request: TokenRequest,
    workflow: PublicationWorkflow = Depends(get_publication_workflow),
):
    """Discard a pending publication action."""
    workflow.deny(token_request.token)
    return DenyResponse()


@router.post(
    "/spaces/moderate",
    response_model=ModerationResult,
    responses={403: {"description": "Moderator access required"}},
    tags=["spaces"],
)
def moderate_memory(
    moderate_request: ModerateRequest,
    workflow: PublicationWorkflow = Depends(get_publication_workflow),
    db: Session = Depends(get_db),
):
    result = workflow.moderate(
        moderate_request.memory_id,
        moderate_request.action,
        space_id=moderate_request.space_id,
        group_id=moderate_request.group_id,
    )
    create_audit_event(
        db, "MODERATION", user_id=workflow.user_id, memory_id=result.memory_id,
        reason_code=result.moderation_status.value.upper(),
        meta={"location": result.location, "reason": moderate_request.reason},
    )
    return result


@router.post("/spaces/search", response_model=SearchResult, tags=["spaces"])
def search_spaces(
    search_request: SearchRequest,
    workflow: PublicationWorkflow = Depends(get_publication_workflow),
):
    """Search published memories. No spaces and no groups means every public space."""
    return workflow.search(**search_request.model_dump())


@router.post("/spaces/query", response_model=QueryResult, tags=["spaces"])
def query_spaces(
    query_request: QueryRequest,
    workflow: PublicationWorkflow = Depends(get_publication_workflow),
):
    return workflow.query(**query_request.model_dump())


@router.put(
    "/spaces/{space_id}/config",
    response_model=SpaceConfig,
    responses={403: {"description": "Moderator access required"}},
    tags=["spaces"],
)
def update_space_config(
    space_id: str,
    config: SpaceConfig,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    space_id = _clean(sanitize_destination_id, space_id, "space_id")
    if space_id not in settings.get_supported_spaces():
        raise NotFoundError(message=f"Space {space_id} not found")
    if not can_moderate_any(SqlCredentialsProvider(db).get_credentials(user_id)):
        raise ModeratorRequiredError(f"Moderator access required to configure space:{space_id}")

    set_space_config(SqlSpaceConfigStore(db), space_id, config)
    create_audit_event(db, "SPACE_CONFIG_UPDATE", user_id=user_id, meta={"space_id": space_id, **config.model_dump(mode="json")})
    return config


@router.put(
    "/groups/{group_id}/config",
    response_model=SpaceConfig,
    responses={403: {"description": "Moderator access required"}},
    tags=["spaces"],
)
def update_group_config(
    group_id: str,
    config: SpaceConfig,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    group_id = _clean(sanitize_destination_id, group_id, "group_id")
    if not can_moderate(SqlCredentialsProvider(db).get_credentials(user_id), group_id):
        raise ModeratorRequiredError(f"Moderator access required to configure group:{group_id}")

    set_group_config(SqlSpaceConfigStore(db), group_id, config)
    create_audit_event(db, "GROUP_CONFIG_UPDATE", user_id=user_id, meta={"group_id": group_id, **config.model_dump(mode="json")})
    return config
