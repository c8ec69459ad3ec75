"""
Semantic routing and conversation context API routes
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from coursebot.core.exceptions import ConfigurationError, UnmappedIntentError
from coursebot.middleware.logging_middleware import get_logger, set_user_id
from coursebot.schemas.semantic import (
    ConversationContextResponse,
    SemanticDecisionResponse,
    SemanticRouteRequest,
    StatusResponse,
)
from coursebot.services.conversation_context import ConversationContextStore, get_conversation_context_store
from coursebot.services.semantic_router import SemanticRouter, get_semantic_router

logger = get_logger(__name__)
router = APIRouter(tags=["semantic"])


@router.post("/semantic/route", response_model=SemanticDecisionResponse)
async def route_message(request: SemanticRouteRequest, semantic_router: SemanticRouter = Depends(get_semantic_router)):
    """Decide intent and entities for one user message"""
    set_user_id(request.user_id)
    try:
        result = await semantic_router.route(
            request.text,
            request.user_id,
            conversation_history=request.conversation_history,
            config=request.config,
        )
    except ConfigurationError as e:
        logger.error(f"Semantic engine misconfigured: {e}")
        raise HTTPException(status_code=503, detail=f"Semantic engine misconfigured: {e}")
    except UnmappedIntentError as e:
        logger.warning(f"Strict mode rejected intent: {e}")
        raise HTTPException(status_code=422, detail=str(e))

    return SemanticDecisionResponse(**result.to_dict())


@router.get("/semantic/cache/stats")
async def get_cache_stats(semantic_router: SemanticRouter = Depends(get_semantic_router)) -> Dict[str, Any]:
    """Normalizer cache statistics and mapping table sizes"""
    normalizer = semantic_router.normalizer
    return {
        "cache": normalizer.get_cache_stats(),
        "mappings": normalizer.get_mapping_stats(),
    }


@router.post("/semantic/cache/clear", response_model=StatusResponse)
async def clear_cache(semantic_router: SemanticRouter = Depends(get_semantic_router)):
    """Empty the lookup and fuzzy caches and reset their counters"""
    semantic_router.normalizer.clear_cache()
    semantic_router.normalizer.initialize_cache_stats()
    logger.info("Normalizer cache cleared via API")
    return StatusResponse(status="ok", message="Normalizer cache cleared")


@router.get("/context/{user_id}", response_model=ConversationContextResponse)
async def get_context(
    user_id: str, store: ConversationContextStore = Depends(get_conversation_context_store)
):
    """Current conversation state for one user"""
    state = await store.get_context(user_id)
    return ConversationContextResponse(user_id=user_id, context=state.to_dict())


@router.delete("/context/{user_id}", response_model=StatusResponse)
async def clear_context(
    user_id: str, store: ConversationContextStore = Depends(get_conversation_context_store)
):
    """Delete conversation state for one user"""
    cleared = await store.clear_context(user_id)
    if not cleared:
        raise HTTPException(status_code=503, detail="Conversation store unavailable")
    return StatusResponse(status="ok", message=f"Context cleared for {user_id}")
