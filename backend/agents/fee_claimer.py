"""
Fee Claimer
Claims agent-token WETH fees and distributes them.

Two entry points:
- process_delegated_claims: cron pass over every treasury identity and the
  agents that delegated fee claiming to it
- claim_user_agent_fees: the unified 'claim-fees' action for one user

Distribution splits the claimed WETH between the deployer (feeSplit percent)
and the service-fee address. It runs only for agents in 'auto' mode whose
schedule is due.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from agents.env import AgentEnv
from agents.trigger_checker import save_last_claim_time
from infrastructure import clock
from services.agent_keys import decrypt_private_key
from services.agent_registry import (
    SCHEDULE_INTERVALS_MS,
    DelegationEntry,
    StoredAgent,
    TreasuryIdentity,
    agent_private_key,
    compute_next_distribution_time,
    get_delegations,
    get_stored_agent,
    list_stored_agents,
    list_treasury_identities,
    update_stored_agent,
)
from services.claim_history import ClaimHistoryEntry, record_claim

logger = logging.getLogger(__name__)


@dataclass
class FeeClaimOutcome:
    user_address: str
    agent_name: str
    success: bool
    weth_claimed: int = 0
    deployer_amount: int = 0
    service_fee: int = 0
    claim_tx_hash: Optional[str] = None
    distribution_tx_hash: Optional[str] = None
    distributed: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "userAddress": self.user_address,
            "agentName": self.agent_name,
            "success": self.success,
            "wethClaimed": str(self.weth_claimed),
            "deployerAmount": str(self.deployer_amount),
            "serviceFee": str(self.service_fee),
            "distributed": self.distributed,
        }
        if self.claim_tx_hash:
            data["claimTxHash"] = self.claim_tx_hash
        if self.distribution_tx_hash:
            data["distributionTxHash"] = self.distribution_tx_hash
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class UserClaimSummary:
    user_address: str
    success: bool
    outcomes: List[FeeClaimOutcome] = field(default_factory=list)

    @property
    def total_weth_claimed(self) -> int:
        return sum(o.weth_claimed for o in self.outcomes)

    def to_dict(self) -> dict:
        return {
            "userAddress": self.user_address,
            "success": self.success,
            "wethClaimed": str(self.total_weth_claimed),
            "agents": [o.to_dict() for o in self.outcomes],
        }


def is_distribution_due(agent: StoredAgent, now_ms: int) -> bool:
    if agent.distribution_mode != "auto":
        return False
    interval = SCHEDULE_INTERVALS_MS.get(agent.distribution_schedule or "")
    if interval is None or not agent.last_distribution_time:
        return True
    return now_ms - agent.last_distribution_time >= interval


def split_claim(amount: int, fee_split: int):
    """(deployer share, service fee) in wei"""
    deployer = amount * fee_split // 100
    return deployer, amount - deployer


async def _distribute(env: AgentEnv, agent: StoredAgent, private_key: str, deployer_address: str,
                      outcome: FeeClaimOutcome) -> None:
    deployer_amount, service_fee = split_claim(outcome.weth_claimed, agent.fee_split)
    outcome.deployer_amount = deployer_amount
    outcome.service_fee = service_fee

    if deployer_amount > 0:
        outcome.distribution_tx_hash = await env.fee_locker.transfer_weth(
            private_key, deployer_address, deployer_amount
        )
    if service_fee > 0:
        if env.settings.service_fee_address:
            await env.fee_locker.transfer_weth(private_key, env.settings.service_fee_address, service_fee)
        else:
            logger.warning(f"[FeeClaim] SERVICE_FEE_ADDRESS not set, service fee stays with {agent.address}")
    outcome.distributed = True


async def claim_for_agent(
    env: AgentEnv,
    user_address: str,
    agent: StoredAgent,
    tokens: List[str] = None,
) -> FeeClaimOutcome:
    """Claim one agent's fees, distribute when due and record history"""
    outcome = FeeClaimOutcome(user_address=user_address, agent_name=agent.agent_name, success=False)
    tokens = tokens or agent.claim_tokens
    if not tokens:
        outcome.success = True
        return outcome

    private_key = agent_private_key(agent, env.settings)
    claim = await env.fee_locker.claim_all(private_key, tokens)
    outcome.success = claim.success
    outcome.weth_claimed = claim.weth_claimed
    outcome.claim_tx_hash = claim.tx_hash
    outcome.error = claim.error

    if not claim.success or claim.weth_claimed == 0:
        return outcome

    now_ms = clock.now_ms()
    if is_distribution_due(agent, now_ms):
        try:
            await _distribute(env, agent, private_key, user_address, outcome)
        except Exception as e:
            logger.error(f"[FeeClaim] Distribution failed for {user_address}/{agent.agent_name}: {e}")
            outcome.success = False
            outcome.error = f"Distribution failed: {e}"
        if outcome.distributed:
            await update_stored_agent(
                env.store,
                user_address,
                agent.agent_name,
                last_distribution_time=now_ms,
                next_distribution_time=compute_next_distribution_time(now_ms, agent.distribution_schedule),
            )

    await record_claim(env.store, user_address, ClaimHistoryEntry(
        agent_name=agent.agent_name,
        token_address=",".join(claim.tokens_claimed),
        weth_claimed=str(claim.weth_claimed),
        deployer_amount=str(outcome.deployer_amount),
        service_fee=str(outcome.service_fee),
        timestamp=now_ms,
        mode=agent.distribution_mode,
        claim_tx_hash=claim.tx_hash,
        distribution_tx_hash=outcome.distribution_tx_hash,
    ))
    logger.info(
        f"[FeeClaim] {user_address}/{agent.agent_name}: claimed {claim.weth_claimed} wei "
        f"(distributed: {outcome.distributed})"
    )
    return outcome


async def process_delegation(env: AgentEnv, treasury: TreasuryIdentity, entry: DelegationEntry) -> FeeClaimOutcome:
    try:
        treasury_key = decrypt_private_key(treasury.encrypted_key, env.settings)
        await env.fee_locker.execute_management(treasury_key, entry.user_address)
    except Exception as e:
        # Audit record only
        logger.warning(f"[FeeClaim] executeManagement failed for {entry.user_address}: {e}")

    agent = await get_stored_agent(env.store, entry.user_address, entry.agent_name)
    if agent is None:
        return FeeClaimOutcome(
            user_address=entry.user_address,
            agent_name=entry.agent_name,
            success=False,
            error="Agent not found",
        )
    return await claim_for_agent(env, entry.user_address, agent, entry.tokens or None)


async def process_delegated_claims(env: AgentEnv) -> List[FeeClaimOutcome]:
    """Cron pass: every treasury identity, every delegated agent"""
    outcomes: List[FeeClaimOutcome] = []
    identities = await list_treasury_identities(env.store, env.settings)
    logger.info(f"[FeeClaim] Processing {len(identities)} treasury identit(ies)")

    for treasury in identities:
        try:
            delegations = await get_delegations(env.store, treasury.address)
        except Exception as e:
            logger.error(f"[FeeClaim] Could not load delegations for {treasury.address}: {e}")
            continue

        for entry in delegations:
            try:
                outcome = await process_delegation(env, treasury, entry)
            except Exception as e:
                logger.error(f"[FeeClaim] Delegated claim failed for {entry.user_address}/{entry.agent_name}: {e}")
                outcome = FeeClaimOutcome(
                    user_address=entry.user_address,
                    agent_name=entry.agent_name,
                    success=False,
                    error=str(e),
                )
            outcomes.append(outcome)

    return outcomes


async def claim_user_agent_fees(env: AgentEnv, user_address: str, tokens: List[str] = None) -> UserClaimSummary:
    """Claim fees for every stored agent of a user; lastClaim is stamped when any claim went through"""
    outcomes = []
    for agent in await list_stored_agents(env.store, user_address):
        try:
            outcomes.append(await claim_for_agent(env, user_address, agent, tokens))
        except Exception as e:
            logger.error(f"[FeeClaim] Claim failed for {user_address}/{agent.agent_name}: {e}")
            outcomes.append(FeeClaimOutcome(user_address, agent.agent_name, success=False, error=str(e)))

    # Claims with a failed distribution still count
    if any(o.success or o.claim_tx_hash for o in outcomes):
        await save_last_claim_time(env.store, user_address, clock.now_ms())
    return UserClaimSummary(
        user_address=user_address,
        success=all(o.success for o in outcomes),
        outcomes=outcomes,
    )
