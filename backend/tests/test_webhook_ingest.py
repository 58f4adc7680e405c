"""
Webhook ingest tests
"""

import pytest

from agents.policy import parse_policy
from agents.webhook_ingest import WebhookEvent, extract_user_address, process_webhook
from conftest import DAI, USDC, USER
from infrastructure.kv_store import put_json
from services.policy_store import policy_key, save_policy


def receipt(event_id="evt-1", user=USER) -> WebhookEvent:
    data = {"user": user, "strategyId": "0x01"} if user else {}
    return WebhookEvent(type="ExecutionReceipt", event_id=event_id, data=data)


@pytest.fixture
def policy():
    return parse_policy({
        "type": "stablecoin-rebalance",
        "tokens": [
            {"address": USDC, "symbol": "USDC", "targetPercentage": 50, "decimals": 6},
            {"address": DAI, "symbol": "DAI", "targetPercentage": 50, "decimals": 18},
        ],
    })


class TestWebhookEvent:

    def test_from_dict(self):
        event = WebhookEvent.from_dict({"type": "ExecutionReceipt", "eventId": "evt-1", "data": {"user": USER}})
        assert extract_user_address(event) == USER

    def test_other_types_have_no_user(self):
        assert extract_user_address(WebhookEvent(type="Swap", event_id="x", data={"user": USER})) is None


class TestProcessWebhook:

    @pytest.mark.asyncio
    async def test_chain_mismatch_skips_everything(self, env, clock, policy):
        await save_policy(env.store, USER, policy)
        result = await process_webhook(env, 8453, [receipt(), receipt("evt-2")])
        assert result.to_dict() == {"processed": 0, "skipped": 2, "results": []}

    @pytest.mark.asyncio
    async def test_irrelevant_and_userless_events_skipped(self, env, clock, policy):
        await save_policy(env.store, USER, policy)
        events = [WebhookEvent(type="Swap", event_id="s-1"), receipt("evt-1", user=None)]
        result = await process_webhook(env, 84532, events)
        assert result.processed == 0
        assert result.skipped == 2

    @pytest.mark.asyncio
    async def test_user_without_policy_skipped(self, env, clock):
        result = await process_webhook(env, 84532, [receipt()])
        assert result.skipped == 1
        assert result.results == []

    @pytest.mark.asyncio
    async def test_receipt_triggers_evaluation(self, env, clock, policy):
        await save_policy(env.store, USER, policy)
        result = await process_webhook(env, 84532, [receipt()])

        assert result.processed == 1
        assert result.results[0]["eventId"] == "evt-1"
        assert result.results[0]["result"]["evaluated"] is True

    @pytest.mark.asyncio
    async def test_redelivered_event_is_deduplicated(self, env, clock, policy):
        await save_policy(env.store, USER, policy)
        await process_webhook(env, 84532, [receipt()])

        clock.advance(120)
        result = await process_webhook(env, 84532, [receipt()])

        assert result.processed == 0
        assert result.skipped == 1
        assert result.results[0]["result"]["skipReason"] == "duplicate_event"

    @pytest.mark.asyncio
    async def test_second_event_in_batch_hits_cooldown(self, env, clock, policy):
        await save_policy(env.store, USER, policy)
        result = await process_webhook(env, 84532, [receipt("evt-1"), receipt("evt-2")])

        assert result.processed == 1
        assert result.results[1]["result"]["skipReason"] == "cooldown"

    @pytest.mark.asyncio
    async def test_malformed_policy_does_not_block_batch(self, env, clock, policy):
        other = "0x6666666666666666666666666666666666666666"
        await put_json(env.store, policy_key(USER), {"type": "stablecoin-rebalance", "driftThreshold": "abc"})
        await save_policy(env.store, other, policy)

        result = await process_webhook(env, 84532, [receipt("evt-1"), receipt("evt-2", user=other)])

        assert result.processed == 1
        assert result.skipped == 1
        assert [r["userAddress"] for r in result.results] == [other]
