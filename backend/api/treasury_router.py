"""
Treasury API Router

Endpoints:
- POST /api/treasury/events   - indexer webhook (ExecutionReceipt events)
- POST /api/treasury/cron     - run one cron sweep
- POST /api/treasury/evaluate - manual evaluation for one user
- GET  /api/treasury/health   - liveness
- GET  /api/treasury/metrics  - call and execution-mode metrics
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from agents.cron_sweep import run_cron_sweep
from agents.env import AgentEnv, get_env
from agents.evaluation_loop import EvaluationContext, evaluate
from agents.policy import is_valid_address
from agents.webhook_ingest import WebhookEvent, process_webhook
from infrastructure.metrics import metrics
from services.user_lock import UserBusyError, user_lease

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/treasury", tags=["treasury"])


class EventModel(BaseModel):
    type: str
    eventId: str
    data: Dict[str, Any] = {}


class WebhookPayload(BaseModel):
    events: List[EventModel]
    chainId: int


class EvaluateRequest(BaseModel):
    userAddress: str


@router.post("/events")
async def ingest_events(payload: WebhookPayload, env: AgentEnv = Depends(get_env)):
    events = [WebhookEvent(type=e.type, event_id=e.eventId, data=e.data) for e in payload.events]
    result = await process_webhook(env, payload.chainId, events)
    return result.to_dict()


@router.post("/cron")
async def run_cron(env: AgentEnv = Depends(get_env)):
    result = await run_cron_sweep(env)
    return result.to_dict()


@router.post("/evaluate")
async def evaluate_user(request: EvaluateRequest, env: AgentEnv = Depends(get_env)):
    """Evaluate one user now, holding the user's lease lock"""
    if not is_valid_address(request.userAddress):
        raise HTTPException(status_code=400, detail="Invalid userAddress")

    try:
        async with user_lease(env.store, request.userAddress):
            result = await evaluate(env, request.userAddress, EvaluationContext(trigger="manual"))
    except UserBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return result.to_dict()


@router.get("/health")
async def health(env: AgentEnv = Depends(get_env)):
    return {
        "status": "healthy",
        "service": "treasury-agent",
        "chainId": env.settings.chain_id,
        "store": type(env.store).__name__,
    }


@router.get("/metrics")
async def get_metrics():
    return metrics.get_all_stats()
