# ==============================================================================
# == backend/irrigation/routers/ai.py - Suggestions & assistant
# ==============================================================================

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas, auth, suggestion_engine, assistant
from ..database import get_config_db, get_data_db
from ..models import auth as model_auth

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/ai",
    tags=["Assistant"]
)

def get_text_generator(request: Request) -> assistant.TextGenerator:
    return request.app.state.text_generator

def _dump(suggestions):
    return [s.model_dump(by_alias=True, exclude_none=True) for s in suggestions]

@router.get("/suggestions")
async def get_suggestions(
    config_db: AsyncSession = Depends(get_config_db),
    data_db: AsyncSession = Depends(get_data_db),
    current_user: model_auth.User = Depends(auth.get_current_user)
):
    try:
        suggestions = await suggestion_engine.evaluate(config_db, data_db, current_user.id)
    except Exception as e:
        logger.error(f"Get suggestions error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    return {
        "suggestions": _dump(suggestions),
        "count": len(suggestions),
        "timestamp": int(time.time()),
    }

@router.post("/suggestions/ack")
async def acknowledge_suggestion(
    body: schemas.AckRequest,
    data_db: AsyncSession = Depends(get_data_db),
    current_user: model_auth.User = Depends(auth.get_current_user)
):
    if not body.suggestion_id:
        raise HTTPException(status_code=400, detail="suggestionId is required")

    try:
        await suggestion_engine.acknowledge(data_db, body.suggestion_id, current_user.id)
    except Exception as e:
        await data_db.rollback()
        logger.error(f"Acknowledgment error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"message": "Suggestion acknowledged", "timestamp": int(time.time())}

@router.get("/acknowledgments")
async def get_acknowledgments(
    data_db: AsyncSession = Depends(get_data_db),
    current_user: model_auth.User = Depends(auth.get_current_user)
):
    records = await suggestion_engine.list_acknowledgments(data_db, current_user.id)
    return {
        "acknowledgments": [
            schemas.AcknowledgmentResponse.model_validate(r).model_dump(by_alias=True)
            for r in records
        ],
        "count": len(records),
    }

@router.post("/chat")
async def chat(
    body: schemas.ChatRequest,
    config_db: AsyncSession = Depends(get_config_db),
    data_db: AsyncSession = Depends(get_data_db),
    generator: assistant.TextGenerator = Depends(get_text_generator),
    current_user: model_auth.User = Depends(auth.get_current_user)
):
    if not body.message:
        raise HTTPException(status_code=400, detail="message is required")

    try:
        reply, suggestions = await assistant.converse(
            config_db, data_db, generator, current_user.id, body.message
        )
    except Exception as e:
        logger.error(f"Assistant chat error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error while communicating with the assistant")

    return {
        "response": reply,
        "suggestions": _dump(suggestions),
        "timestamp": int(time.time()),
    }
