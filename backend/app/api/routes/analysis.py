import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request

from app import crud
from app.agent.analysis_agent import PropertyAnalysisInput
from app.agent.llm_client import LLMProviderError
from app.api.deps import (
    AnalysisAgentDep,
    CurrentUser,
    OptionalUser,
    SessionDep,
    record_event_safely,
)
from app.core.config import settings
from app.core.limiter import limiter
from app.models import AnalysisCreate
from app.schemas import AnalysisPublic, AnalysisRequest, AnalysisResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def provider_error_response(exc: LLMProviderError) -> tuple[int, str]:
    """Map an upstream provider status onto the status and message sent to the browser."""
    if exc.status_code == 429:
        return 429, "Rate limit reached. Please try again in a few minutes."
    if exc.status_code in (401, 403):
        return 503, "Invalid API configuration. Contact support."
    if exc.status_code == 402:
        return 503, "API quota exceeded. Contact support."
    return 500, "Error during property analysis"


@router.post("", response_model=AnalysisResponse)
@limiter.limit(settings.ANALYSIS_RATE_LIMIT)
async def create_analysis(
    request: Request,
    payload: AnalysisRequest,
    session: SessionDep,
    agent: AnalysisAgentDep,
    current_user: OptionalUser,
) -> Any:
    """
    Analyze a property. A bearer token is optional; without one the analysis is stored anonymously.
    """
    user_id = current_user.id if current_user else None
    notes = payload.acquisition_notes or None
    who = f"user {user_id}" if user_id else "anonymous user"

    record_event_safely(
        session,
        request,
        "analysis_started",
        user_id=user_id,
        details={
            "propertyAddress": payload.property_address,
            "analysisType": payload.analysis_type,
            "isAnonymous": user_id is None,
        },
    )
    logger.info("Analysis started for %s: %s", who, payload.property_address)

    try:
        outcome = await agent.run(
            PropertyAnalysisInput(
                property_address=payload.property_address,
                acquisition_notes=notes,
                analysis_type=payload.analysis_type,
            )
        )
    except LLMProviderError as exc:
        status_code, message = provider_error_response(exc)
        logger.error("Analysis failed for %s (%s): %s", who, exc.status_code, exc.message)
        record_event_safely(
            session,
            request,
            "analysis_error",
            user_id=user_id,
            details={
                "error": exc.message,
                "provider": exc.provider,
                "statusCode": exc.status_code,
                "propertyAddress": payload.property_address,
                "isAnonymous": user_id is None,
            },
        )
        raise HTTPException(status_code=status_code, detail=message) from exc

    analysis = crud.create_analysis(
        session=session,
        analysis_in=AnalysisCreate(
            property_address=payload.property_address,
            acquisition_notes=notes,
            analysis_type=payload.analysis_type,
            ai_analysis=outcome.ai_analysis,
            tokens_used=outcome.tokens_used,
            processing_time=outcome.processing_time,
            is_demo_mode=outcome.is_demo_mode,
        ),
        user_id=user_id,
    )

    record_event_safely(
        session,
        request,
        "analysis_completed",
        user_id=user_id,
        details={
            "analysisId": analysis.id,
            "tokensUsed": outcome.tokens_used,
            "processingTime": outcome.processing_time,
            "isAnonymous": user_id is None,
            "isDemoMode": outcome.is_demo_mode,
        },
    )
    logger.info(
        "Analysis %s completed for %s (%sms, %s tokens, demo=%s)",
        analysis.id,
        who,
        outcome.processing_time,
        outcome.tokens_used,
        outcome.is_demo_mode,
    )

    return AnalysisResponse(analysis=AnalysisPublic.from_record(analysis))


@router.get("/{id}", response_model=AnalysisResponse)
def read_analysis(id: int, session: SessionDep, current_user: CurrentUser) -> Any:
    analysis = crud.get_user_analysis(
        session=session, analysis_id=id, user_id=current_user.id
    )
    if not analysis:
        raise HTTPException(status_code=404, detail="Analysis not found")
    return AnalysisResponse(analysis=AnalysisPublic.from_record(analysis))
