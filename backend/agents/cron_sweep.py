"""
Cron Sweep
One sweep = two independent, best-effort passes:

1. Delegated fee-claim pass over every treasury identity
2. Policy evaluation pass over every user with a stored policy
   - unified policy: run the trigger checker and execute each action in
     priority order through an explicit switch on the action type
   - legacy policy: run the evaluation loop directly

A failure for one user or agent is logged and recorded; it never stops the
sweep for the others.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from agents.env import AgentEnv, get_env
from agents.evaluation_loop import SKIP_ERROR, EvaluationContext, evaluate
from agents.fee_claimer import FeeClaimOutcome, claim_user_agent_fees, process_delegated_claims
from agents.policy import UnifiedPolicy, is_unified_policy
from agents.trigger_checker import (
    ActionType,
    TriggerAction,
    check_all_triggers,
    get_last_claim_time,
    should_claim_by_frequency,
)
from integrations.trade import TradeRequest
from services.authorization import validate_authorization
from services.policy_store import list_policy_users, load_policy
from services.spending_tracker import track_spending

logger = logging.getLogger(__name__)


@dataclass
class ActionOutcome:
    type: str
    success: bool
    skipped: bool = False
    details: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"type": self.type, "success": self.success, "skipped": self.skipped, **self.details}
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class UserSweepResult:
    user_address: str
    policy_type: Optional[str] = None
    evaluation: Optional[Dict[str, Any]] = None
    triggers: Optional[Dict[str, Any]] = None
    actions: List[ActionOutcome] = field(default_factory=list)
    skip_reason: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {"userAddress": self.user_address, "policyType": self.policy_type}
        if self.evaluation is not None:
            data["evaluation"] = self.evaluation
        if self.triggers is not None:
            data["triggers"] = self.triggers
        if self.actions:
            data["actions"] = [a.to_dict() for a in self.actions]
        if self.skip_reason:
            data["skipReason"] = self.skip_reason
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class CronSweepResult:
    fee_claims: List[FeeClaimOutcome] = field(default_factory=list)
    users: List[UserSweepResult] = field(default_factory=list)
    fee_pass_error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "feeClaims": [o.to_dict() for o in self.fee_claims],
            "evaluations": [u.to_dict() for u in self.users],
            "usersProcessed": len(self.users),
            "usersFailed": sum(1 for u in self.users if u.skip_reason == SKIP_ERROR),
        }
        if self.fee_pass_error:
            data["feePassError"] = self.fee_pass_error
        return data


# ============================================
# ACTION EXECUTION
# ============================================

async def _claim_fees(env: AgentEnv, user_address: str, action: TriggerAction, policy: UnifiedPolicy) -> ActionOutcome:
    frequency = policy.fee_claiming.frequency if policy.fee_claiming else "threshold"
    last_claim = await get_last_claim_time(env.store, user_address)
    if not should_claim_by_frequency(frequency, last_claim):
        return ActionOutcome(action.type.value, success=True, skipped=True, details={"reason": "frequency"})

    summary = await claim_user_agent_fees(env, user_address, action.params.get("tokens") or None)
    return ActionOutcome(
        action.type.value,
        success=summary.success,
        details={"wethClaimed": str(summary.total_weth_claimed), "agents": len(summary.outcomes)},
    )


async def _rebalance(env: AgentEnv, user_address: str, action: TriggerAction) -> ActionOutcome:
    result = await evaluate(env, user_address, EvaluationContext(trigger="cron"))
    return ActionOutcome(
        action.type.value,
        success=result.error is None,
        skipped=result.skipped,
        details={"evaluation": result.to_dict()},
        error=result.error,
    )


async def _exit_tokens(env: AgentEnv, user_address: str, action: TriggerAction, policy: UnifiedPolicy) -> ActionOutcome:
    """Sell the user's whole balance of each listed token for WETH"""
    exits = []
    trade_usd = env.settings.estimated_trade_usd

    for token in action.params.get("tokens", []):
        address = token["address"]
        entry = {"token": address, "symbol": token.get("symbol")}
        exits.append(entry)

        try:
            balance = await env.reader.get_balance(address, user_address)
            if not balance:
                entry.update(success=True, skipped=True)
                continue

            validation = await validate_authorization(
                env.store, user_address, address, env.settings.weth_address, trade_usd
            )
            if not validation.valid:
                entry.update(success=False, error=validation.error)
                continue

            result = await env.dispatcher.dispatch(TradeRequest(
                user_address=user_address,
                token_in=address,
                token_out=env.settings.weth_address,
                amount_in=balance,
                max_slippage_bps=policy.max_slippage_bps,
            ))
            entry.update(result.to_dict())
            if result.success:
                await track_spending(env.store, user_address, trade_usd)
        except Exception as e:
            logger.warning(f"[Cron] Exit of {address} for {user_address} failed: {e}")
            entry.update(success=False, error=str(e))

    return ActionOutcome(
        action.type.value,
        success=all(e.get("success") for e in exits),
        details={"exits": exits},
    )


async def execute_action(env: AgentEnv, user_address: str, action: TriggerAction, policy: UnifiedPolicy) -> ActionOutcome:
    if action.type is ActionType.CLAIM_FEES:
        return await _claim_fees(env, user_address, action, policy)
    elif action.type is ActionType.REBALANCE:
        return await _rebalance(env, user_address, action)
    elif action.type is ActionType.EXIT_TOKEN:
        return await _exit_tokens(env, user_address, action, policy)
    elif action.type is ActionType.COMPOUND:
        return ActionOutcome(action.type.value, success=False, skipped=True, error="compound is not supported yet")
    else:
        logger.error(f"[Cron] Unknown action type {action.type!r} for {user_address}")
        return ActionOutcome(str(action.type), success=False, error=f"Unknown action type: {action.type}")


# ============================================
# SWEEP
# ============================================

async def sweep_user(env: AgentEnv, user_address: str) -> UserSweepResult:
    policy = await load_policy(env.store, user_address)
    if policy is None:
        return UserSweepResult(user_address, skip_reason="no_policy")

    result = UserSweepResult(user_address, policy_type=policy.type)

    if not is_unified_policy(policy):
        evaluation = await evaluate(env, user_address, EvaluationContext(trigger="cron"))
        result.evaluation = evaluation.to_dict()
        return result

    triggers = await check_all_triggers(env, user_address, policy)
    result.triggers = triggers.to_dict()
    logger.info(f"[Cron] {user_address}: {triggers.reason}")

    for action in triggers.actions:
        try:
            outcome = await execute_action(env, user_address, action, policy)
        except Exception as e:
            logger.error(f"[Cron] {action.type.value} failed for {user_address}: {e}")
            outcome = ActionOutcome(action.type.value, success=False, error=str(e))
        result.actions.append(outcome)

    return result


async def run_policy_pass(env: AgentEnv) -> List[UserSweepResult]:
    users = await list_policy_users(env.store)
    logger.info(f"[Cron] Evaluating {len(users)} user(s)")

    results = []
    for user_address in users:
        try:
            results.append(await sweep_user(env, user_address))
        except Exception as e:
            logger.error(f"[Cron] Evaluation failed for {user_address}: {e}")
            results.append(UserSweepResult(user_address, skip_reason=SKIP_ERROR, error=str(e)))
    return results


async def run_cron_sweep(env: AgentEnv = None) -> CronSweepResult:
    env = env or get_env()
    sweep = CronSweepResult()

    try:
        sweep.fee_claims = await process_delegated_claims(env)
    except Exception as e:
        logger.error(f"[Cron] Fee-claim pass failed: {e}")
        sweep.fee_pass_error = str(e)

    sweep.users = await run_policy_pass(env)
    logger.info(
        f"[Cron] Sweep done: {len(sweep.fee_claims)} delegated claim(s), {len(sweep.users)} user(s)"
    )
    return sweep


# ============================================
# SCHEDULER
# ============================================

class CronScheduler:
    """In-process sweep loop for deployments without an external cron"""

    def __init__(self, interval_seconds: int, env: AgentEnv = None):
        self.interval = interval_seconds
        self.env = env
        self.running = False
        self.last_run: Optional[datetime] = None
        self.last_result: Optional[CronSweepResult] = None

    async def start(self):
        self.running = True
        logger.info(f"[Cron] Scheduler started (every {self.interval}s)")

        while self.running:
            try:
                self.last_result = await run_cron_sweep(self.env)
                self.last_run = datetime.utcnow()
            except Exception as e:
                logger.error(f"[Cron] Error in sweep loop: {e}")

            await asyncio.sleep(self.interval)

    def stop(self):
        self.running = False
        logger.info("[Cron] Scheduler stopped")


_scheduler: Optional[CronScheduler] = None


def start_scheduler(interval_seconds: int) -> CronScheduler:
    """Start the sweep loop in the background (call from app startup)"""
    global _scheduler
    if _scheduler is None:
        _scheduler = CronScheduler(interval_seconds)
        asyncio.create_task(_scheduler.start())
    return _scheduler


def stop_scheduler():
    if _scheduler is not None:
        _scheduler.stop()
