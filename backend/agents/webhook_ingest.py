"""
Webhook Ingest
Routes indexed on-chain events to the evaluation loop.

Only ExecutionReceipt events are relevant; the user is taken from the event
data (the wallet recorded by the receipt hook). Events for another chain are
all skipped.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from agents.env import AgentEnv
from agents.evaluation_loop import EvaluationContext, EvaluationResult, evaluate
from services.policy_store import load_policy

logger = logging.getLogger(__name__)

RELEVANT_EVENT_TYPES = ("ExecutionReceipt",)


@dataclass
class WebhookEvent:
    type: str
    event_id: str
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "WebhookEvent":
        return cls(
            type=data.get("type", ""),
            event_id=data.get("eventId", ""),
            data=data.get("data") or {},
        )


@dataclass
class WebhookResult:
    processed: int = 0
    skipped: int = 0
    results: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"processed": self.processed, "skipped": self.skipped, "results": self.results}


def extract_user_address(event: WebhookEvent) -> Optional[str]:
    if event.type == "ExecutionReceipt":
        return event.data.get("user") or None
    return None


async def process_events(env: AgentEnv, events: List[WebhookEvent]) -> WebhookResult:
    outcome = WebhookResult()

    for event in events:
        if event.type not in RELEVANT_EVENT_TYPES:
            logger.info(f"[Webhook] Skipping irrelevant event type: {event.type}")
            outcome.skipped += 1
            continue

        user_address = extract_user_address(event)
        if not user_address:
            logger.info(f"[Webhook] No user address in event {event.event_id}")
            outcome.skipped += 1
            continue

        try:
            if await load_policy(env.store, user_address) is None:
                logger.info(f"[Webhook] No policy for {user_address}, skipping event {event.event_id}")
                outcome.skipped += 1
                continue

            result: EvaluationResult = await evaluate(env, user_address, EvaluationContext(
                trigger="webhook",
                event_id=event.event_id,
                event_type=event.type,
            ))
        except Exception as e:
            logger.error(f"[Webhook] Error processing event {event.event_id}: {e}")
            outcome.skipped += 1
            continue

        outcome.results.append({
            "eventId": event.event_id,
            "userAddress": user_address,
            "result": result.to_dict(),
        })
        if result.evaluated:
            outcome.processed += 1
        else:
            outcome.skipped += 1

    logger.info(f"[Webhook] Processed: {outcome.processed}, Skipped: {outcome.skipped}")
    return outcome


async def process_webhook(env: AgentEnv, chain_id: int, events: List[WebhookEvent]) -> WebhookResult:
    if chain_id != env.settings.chain_id:
        logger.info(f"[Webhook] Ignoring events for chain {chain_id}, expected {env.settings.chain_id}")
        return WebhookResult(skipped=len(events))

    logger.info(f"[Webhook] Received {len(events)} event(s)")
    return await process_events(env, events)
