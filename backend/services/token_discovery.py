"""
Agent Token Discovery
Finds tokens launched by a user's agent wallets via the Clawnch API,
with 24h price change from its analytics endpoint.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional

import httpx

from config.settings import Settings, get_settings
from infrastructure.metrics import metrics

logger = logging.getLogger(__name__)


@dataclass
class AgentToken:
    address: str
    symbol: str
    name: str
    agent_wallet: str
    platform: str = "moltbook"
    price_change_24h: Optional[float] = None
    market_cap_usd: Optional[str] = None


class TokenDiscoveryClient:
    """Client for the Clawnch launches / analytics API"""

    def __init__(self, settings: Settings = None, timeout: float = 10.0):
        self.settings = settings or get_settings()
        self.api_base = self.settings.clawnch_api_url
        self.timeout = timeout

    async def _get_json(self, client: httpx.AsyncClient, path: str, params: dict):
        start = time.time()
        resp = await client.get(
            f"{self.api_base}{path}",
            params=params,
            headers={"Accept": "application/json"},
        )
        ok = resp.status_code == 200
        metrics.record_call("clawnch", path, ok, time.time() - start, None if ok else f"HTTP {resp.status_code}")
        if not ok:
            logger.warning(f"[Clawnch] {path} returned {resp.status_code}")
            return None
        return resp.json()

    async def get_token_analytics(self, client: httpx.AsyncClient, token_address: str) -> dict:
        try:
            data = await self._get_json(client, "/analytics/token", {"address": token_address})
        except httpx.HTTPError as e:
            logger.warning(f"[Clawnch] Analytics failed for {token_address}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    async def discover_agent_tokens(self, user_address: str, agent_wallets: List[str]) -> List[AgentToken]:
        """
        Tokens launched by the given agent wallets.

        Only agent wallets are queried, never the deployer address.
        Per-wallet failures are logged and skipped.
        """
        if not agent_wallets:
            return []

        tokens: List[AgentToken] = []
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for wallet in agent_wallets:
                try:
                    data = await self._get_json(client, "/launches", {"wallet": wallet})
                except httpx.HTTPError as e:
                    logger.warning(f"[Clawnch] Error fetching tokens for {wallet}: {e}")
                    continue
                if data is None:
                    continue

                launches = data if isinstance(data, list) else data.get("launches") or []
                for launch in launches:
                    address = launch.get("contractAddress")
                    if not address:
                        continue
                    analytics = await self.get_token_analytics(client, address)
                    change = analytics.get("priceChange24h")
                    tokens.append(AgentToken(
                        address=address,
                        symbol=launch.get("symbol", ""),
                        name=launch.get("name", ""),
                        agent_wallet=launch.get("agentWallet") or wallet,
                        platform=launch.get("source") or launch.get("platform") or "moltbook",
                        price_change_24h=float(change) if change is not None else None,
                        market_cap_usd=analytics.get("marketCapUsd"),
                    ))

        logger.info(f"[Clawnch] {user_address}: discovered {len(tokens)} agent token(s)")
        return tokens
