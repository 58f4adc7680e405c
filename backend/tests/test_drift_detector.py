"""
Drift detector tests
Normalization across decimals, strict threshold, trade amounts, bad reads.
"""

import pytest

from agents.drift_detector import (
    calculate_thresholds,
    check_drift,
    check_periodic_trigger,
    check_thresholds,
    compute_drift,
    denormalize,
    normalize,
)
from agents.policy import Policy, TokenAllocation
from conftest import DAI, USDC, USER, FakeReader


# ============================================
# FIXTURES
# ============================================

@pytest.fixture
def policy():
    return Policy(
        type="stablecoin-rebalance",
        tokens=[
            TokenAllocation(address=USDC, symbol="USDC", target_percentage=50, decimals=6),
            TokenAllocation(address=DAI, symbol="DAI", target_percentage=50, decimals=18),
        ],
        drift_threshold=5,
        max_slippage_bps=50,
    )


# ============================================
# NORMALIZATION
# ============================================

class TestNormalization:

    def test_six_decimals_scaled_up(self):
        assert normalize(1_000_000, 6) == 10 ** 18

    def test_eighteen_decimals_unchanged(self):
        assert normalize(5 * 10 ** 18, 18) == 5 * 10 ** 18

    def test_more_than_eighteen_scaled_down(self):
        assert normalize(10 ** 24, 24) == 10 ** 18

    def test_denormalize_truncates(self):
        assert denormalize(10 ** 18 + 999, 6) == 1_000_000


# ============================================
# DRIFT
# ============================================

class TestComputeDrift:
    """Pure drift computation"""

    def test_empty_wallet_has_no_drift(self, policy):
        result = compute_drift(policy, [0, 0])
        assert result.has_drift is False
        assert result.drifts == []
        assert result.allocations == []
        assert result.total_value_normalized == 0

    def test_ninety_ten_split(self, policy):
        result = compute_drift(policy, [900 * 10 ** 6, 100 * 10 ** 18])

        assert result.has_drift is True
        assert [a.percentage for a in result.allocations] == [90.0, 10.0]

        usdc, dai = result.drifts
        assert usdc.action == "sell"
        assert usdc.drift == 40.0
        assert usdc.amount == 400 * 10 ** 6
        assert dai.action == "buy"
        assert dai.amount == 400 * 10 ** 18

    @pytest.mark.parametrize("balances", [
        [1_234_567, 98_765_432, 3 * 10 ** 17 + 7],
        [333_333_333, 1, 10 ** 18],
        [7, 0, 123_456_789_012_345_678],
        [999_999_999_999, 12_345_678_901, 42 * 10 ** 18 + 17],
    ])
    def test_percentages_sum_to_100_across_decimals(self, balances):
        mixed = Policy(
            type="stablecoin-rebalance",
            tokens=[
                TokenAllocation(address=USDC, symbol="USDC", target_percentage=40, decimals=6),
                TokenAllocation(address="0x" + "7" * 40, symbol="WBTC", target_percentage=30, decimals=8),
                TokenAllocation(address=DAI, symbol="DAI", target_percentage=30, decimals=18),
            ],
            drift_threshold=5,
            max_slippage_bps=50,
        )
        result = compute_drift(mixed, balances)

        assert result.total_value_normalized > 0
        total = sum(a.percentage for a in result.allocations)
        assert abs(total - 100) <= 0.01 * len(mixed.tokens)

    def test_drift_equal_to_threshold_does_not_trigger(self, policy):
        result = compute_drift(policy, [550 * 10 ** 6, 450 * 10 ** 18])
        assert result.has_drift is False
        assert [a.percentage for a in result.allocations] == [55.0, 45.0]

    def test_drift_just_over_threshold_triggers(self, policy):
        result = compute_drift(policy, [551 * 10 ** 6, 449 * 10 ** 18])
        assert result.has_drift is True

    def test_first_sell_buy_pair(self, policy):
        result = compute_drift(policy, [900 * 10 ** 6, 100 * 10 ** 18])
        sell, buy = result.first_sell_buy_pair()
        assert sell.token == USDC
        assert buy.token == DAI

    def test_to_dict_serializes_amounts_as_strings(self, policy):
        data = compute_drift(policy, [900 * 10 ** 6, 100 * 10 ** 18]).to_dict()
        assert data["drifts"][0]["amount"] == "400000000"
        assert data["totalValueNormalized"] == str(1000 * 10 ** 18)


class TestCheckDrift:

    @pytest.mark.asyncio
    async def test_reads_balances(self, policy):
        reader = FakeReader(balances={USDC: 900 * 10 ** 6, DAI: 100 * 10 ** 18})
        result = await check_drift(reader, USER, policy)
        assert result.has_drift is True
        assert len(result.drifts) == 2

    @pytest.mark.asyncio
    async def test_unreadable_balance_counts_as_zero(self, policy):
        reader = FakeReader(balances={USDC: 100 * 10 ** 6}, failing=[DAI])
        result = await check_drift(reader, USER, policy)

        assert result.has_drift is True
        assert [a.percentage for a in result.allocations] == [100.0, 0.0]
        assert result.drifts[1].action == "buy"


# ============================================
# THRESHOLD / PERIODIC
# ============================================

class TestThresholdHelpers:

    def test_thresholds_are_clamped(self):
        assert calculate_thresholds(2, 5) == {"min": 0.0, "max": 7}
        assert calculate_thresholds(98, 5) == {"min": 93, "max": 100.0}

    def test_violations_above_and_below(self, policy):
        thresholds = calculate_thresholds(50, 5)
        violations = check_thresholds(policy.tokens, [70, 30], thresholds)
        assert [(v.symbol, v.direction) for v in violations] == [("USDC", "above"), ("DAI", "below")]

    def test_no_violations_on_empty_balances(self, policy):
        assert check_thresholds(policy.tokens, [0, 0], calculate_thresholds(50, 5)) == []

    def test_periodic_trigger(self, policy):
        policy.rebalance_interval = 3600
        assert check_periodic_trigger(policy, 1000, now_s=4599)["shouldTrigger"] is False
        result = check_periodic_trigger(policy, 1000, now_s=4600)
        assert result["shouldTrigger"] is True
        assert result["nextRebalance"] == 4600

    def test_periodic_default_interval(self, policy):
        assert check_periodic_trigger(policy, 0, now_s=0)["intervalSeconds"] == 86400
