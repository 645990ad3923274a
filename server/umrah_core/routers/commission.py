"""Commission router for agent and commission operations."""

import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import Actor, DatabaseSession
from ..core.exceptions import ProblemDetailsException
from ..schemas.commission import (
    Agent,
    AgentRequest,
    AgentSummary,
    Commission,
    CreateAgentRequest,
    ListCommissionsRequest,
    ListCommissionsResponse,
    MarkCommissionPaidRequest,
)
from ..schemas.common import CONFLICT_RESPONSES
from ..services.commission_service import CommissionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/commission", tags=["commission"])


@router.post("/agent/create", response_model=Agent, status_code=201, responses=CONFLICT_RESPONSES)
async def create_agent(
    request: CreateAgentRequest,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Register a sales agent with an empty wallet."""
    commission_service = CommissionService(db)

    try:
        agent = await commission_service.create_agent(request)
        return JSONResponse(status_code=201, content=Agent.model_validate(agent).model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in agent creation",
            extra={"agent_code": request.agent_code, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/agent/get", response_model=Agent, responses=CONFLICT_RESPONSES)
async def get_agent(
    request: AgentRequest,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Get agent details."""
    commission_service = CommissionService(db)

    try:
        agent = await commission_service.get_agent_or_raise(request.agent_id)
        return JSONResponse(status_code=200, content=Agent.model_validate(agent).model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in agent retrieval",
            extra={"agent_id": str(request.agent_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/list", response_model=ListCommissionsResponse, responses=CONFLICT_RESPONSES)
async def list_commissions(
    request: ListCommissionsRequest,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """List an agent's commissions, newest first."""
    commission_service = CommissionService(db)

    try:
        commissions = await commission_service.list_commissions(request.agent_id, request.status)
        response_data = ListCommissionsResponse(
            items=[Commission.model_validate(commission) for commission in commissions]
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in commission listing",
            extra={"agent_id": str(request.agent_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/mark-paid", response_model=Commission, responses=CONFLICT_RESPONSES)
async def mark_commission_paid(
    request: MarkCommissionPaidRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor
) -> JSONResponse:
    """
    Pay out a pending commission.

    The agent wallet is credited in the same transaction. A commission can be
    paid out once.
    """
    commission_service = CommissionService(db)

    try:
        commission = await commission_service.mark_paid(request.commission_id, actor, request.notes)
        return JSONResponse(
            status_code=200,
            content=Commission.model_validate(commission).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in commission payout",
            extra={"commission_id": str(request.commission_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/summary", response_model=AgentSummary, responses=CONFLICT_RESPONSES)
async def get_agent_summary(
    request: AgentRequest,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Commission totals and wallet balance of an agent."""
    commission_service = CommissionService(db)

    try:
        summary = await commission_service.get_agent_summary(request.agent_id)
        return JSONResponse(status_code=200, content=AgentSummary(**summary).model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in agent summary",
            extra={"agent_id": str(request.agent_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
