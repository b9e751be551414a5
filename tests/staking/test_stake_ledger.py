"""Tests for truthchain.staking.stake_ledger - escrow, idempotency and recovery."""

from __future__ import annotations

import asyncio
import json
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from tests.fakes import ALICE, BOB, CAROL, ESCROW
from truthchain.core.exceptions import (
    ClaimNotAcceptingStakesError,
    ConfirmationTimedOutError,
    DatabaseException,
    DuplicateStakeError,
    InsufficientFundsError,
    InsufficientStakeError,
    NotFoundError,
    SelfStakeError,
    SubmissionRejectedError,
    ValidationException,
)
from truthchain.ledger.models import TransactionState, TransactionStatusInfo
from truthchain.staking.enums import StakeSide, TransactionKind, TransactionStatus
from truthchain.staking.stake_ledger import build_memo


async def wait_for_submissions(ledger, count):
    async def poll():
        while len(ledger.submissions) < count:
            await asyncio.sleep(0)

    await asyncio.wait_for(poll(), 1.0)


@pytest.fixture
async def claim(lifecycle):
    return await lifecycle.create(ALICE, "Water boils at 100C at sea level", Decimal("1"))


@pytest.fixture
def short_timeout(fake_ledger, settings):
    fake_ledger.settings = settings.model_copy(update={"confirmation_timeout": 0.05})


@pytest.fixture
def lose_first_confirmation(claim, store, monkeypatch):
    """Fail the first ``confirm_stake`` after the stake itself was applied."""
    confirm_stake = store.confirm_stake
    failures = [DatabaseException("connection lost")]

    async def flaky(*args, **kwargs):
        if failures:
            raise failures.pop()
        return await confirm_stake(*args, **kwargs)

    monkeypatch.setattr(store, "confirm_stake", flaky)


# ============================================================================
# Happy path
# ============================================================================


class TestEscrow:
    async def test_verification_stake_applied(self, claim, stake_ledger, store, fake_ledger):
        stake = await stake_ledger.escrow(claim.id, BOB, "oppose", Decimal("2"))

        assert stake.side == StakeSide.OPPOSE
        assert stake.amount == Decimal("2")
        assert stake.ledger_tx_id == "TX0002"
        assert stake.block_ref is not None
        assert stake.is_creation is False

        stored = await store.get_claim(claim.id)
        assert stored.total_staked == Decimal("3")
        assert stored.verification_count == 1

        record = await store.get_transaction("TX0002")
        assert record.status == TransactionStatus.CONFIRMED
        assert record.kind == TransactionKind.VERIFICATION_STAKE
        assert record.block_ref == stake.block_ref

    async def test_payment_goes_to_escrow_with_memo(self, claim, stake_ledger, fake_ledger):
        await stake_ledger.escrow(claim.id, BOB, StakeSide.SUPPORT, 1)

        tx = fake_ledger.transactions["TX0002"]
        assert tx["receiver"] == ESCROW
        assert json.loads(tx["note"]) == {
            "app": "truthchain",
            "claim": claim.id,
            "side": "support",
            "type": "verification_stake",
        }

    async def test_staker_profile_counts_stake(self, claim, stake_ledger, store):
        await stake_ledger.escrow(claim.id, BOB, "support", 1)
        profile = await store.get_profile(BOB)
        assert profile.total_stakes == 1
        assert profile.reputation_score == 100.0

    async def test_concurrent_stakes_from_different_users(self, claim, stake_ledger, store):
        await asyncio.gather(
            stake_ledger.escrow(claim.id, BOB, "support", Decimal("1")),
            stake_ledger.escrow(claim.id, CAROL, "oppose", Decimal("2")),
        )

        stored = await store.get_claim(claim.id)
        assert stored.verification_count == 2
        assert stored.total_staked == Decimal("4")

    async def test_concurrent_stakes_confirmed_out_of_order(self, claim, stake_ledger, store, fake_ledger):
        fake_ledger.auto_confirm = False
        bob = asyncio.create_task(stake_ledger.escrow(claim.id, BOB, "support", 1))
        carol = asyncio.create_task(stake_ledger.escrow(claim.id, CAROL, "support", 1))
        await wait_for_submissions(fake_ledger, 3)

        fake_ledger.confirm(fake_ledger.submissions[2])
        fake_ledger.confirm(fake_ledger.submissions[1])
        await asyncio.gather(bob, carol)

        stored = await store.get_claim(claim.id)
        assert stored.verification_count == 2
        assert stored.total_staked == Decimal("3")


# ============================================================================
# Rejections before any ledger I/O
# ============================================================================


class TestLocalChecks:
    async def test_below_minimum(self, claim, stake_ledger, store, fake_ledger):
        with pytest.raises(InsufficientStakeError) as exc_info:
            await stake_ledger.escrow(claim.id, BOB, "support", Decimal("0.05"))

        assert isinstance(exc_info.value, ValidationException)
        assert len(fake_ledger.submissions) == 1
        assert await store.get_stake(claim.id, BOB) is None
        assert (await store.get_claim(claim.id)).total_staked == Decimal("1")

    async def test_duplicate_stake(self, claim, stake_ledger, store, fake_ledger):
        await stake_ledger.escrow(claim.id, BOB, "support", 1)

        with pytest.raises(DuplicateStakeError):
            await stake_ledger.escrow(claim.id, BOB, "oppose", 5)

        stored = await store.get_claim(claim.id)
        assert stored.verification_count == 1
        assert stored.total_staked == Decimal("2")
        assert len(fake_ledger.submissions) == 2

    async def test_concurrent_duplicate_pays_once(self, claim, stake_ledger, fake_ledger):
        results = await asyncio.gather(
            stake_ledger.escrow(claim.id, BOB, "support", 1),
            stake_ledger.escrow(claim.id, BOB, "support", 1),
            return_exceptions=True,
        )

        assert sum(isinstance(r, DuplicateStakeError) for r in results) == 1
        assert len(fake_ledger.submissions) == 2

    async def test_author_cannot_stake_on_own_claim(self, claim, stake_ledger, fake_ledger):
        with pytest.raises(SelfStakeError):
            await stake_ledger.escrow(claim.id, ALICE, "support", 1)
        assert len(fake_ledger.submissions) == 1

    async def test_unknown_claim(self, stake_ledger):
        with pytest.raises(NotFoundError):
            await stake_ledger.escrow("missing", BOB, "support", 1)

    async def test_window_expired(self, claim, stake_ledger, clock, fake_ledger):
        clock.advance(hours=24)
        with pytest.raises(ClaimNotAcceptingStakesError) as exc_info:
            await stake_ledger.escrow(claim.id, BOB, "support", 1)
        assert "expired" in exc_info.value.reason
        assert len(fake_ledger.submissions) == 1

    async def test_invalid_side(self, claim, stake_ledger):
        with pytest.raises(ValidationException) as exc_info:
            await stake_ledger.escrow(claim.id, BOB, "maybe", 1)
        assert exc_info.value.field == "side"

    async def test_invalid_staker_address(self, claim, stake_ledger):
        with pytest.raises(ValidationException) as exc_info:
            await stake_ledger.escrow(claim.id, "bob", "support", 1)
        assert exc_info.value.field == "staker"

    async def test_insufficient_funds(self, claim, stake_ledger, store, fake_ledger):
        fake_ledger.balances[BOB] = Decimal("1.05")
        with pytest.raises(InsufficientFundsError):
            await stake_ledger.escrow(claim.id, BOB, "support", 1)
        assert await store.find_transaction(claim.id, BOB) is None


# ============================================================================
# Ledger failures and recovery
# ============================================================================


class TestRecovery:
    async def test_rejected_transaction_marked_failed(self, claim, stake_ledger, store, fake_ledger):
        fake_ledger.auto_confirm = False
        task = asyncio.create_task(stake_ledger.escrow(claim.id, BOB, "support", 1))
        await wait_for_submissions(fake_ledger, 2)
        fake_ledger.fail("TX0002", "overspend")

        with pytest.raises(SubmissionRejectedError):
            await task

        record = await store.get_transaction("TX0002")
        assert record.status == TransactionStatus.FAILED
        assert record.error == "overspend"
        assert (await store.get_claim(claim.id)).verification_count == 0

    async def test_failed_transaction_allows_new_submission(self, claim, stake_ledger, store, fake_ledger):
        fake_ledger.auto_confirm = False
        task = asyncio.create_task(stake_ledger.escrow(claim.id, BOB, "support", 1))
        await wait_for_submissions(fake_ledger, 2)
        fake_ledger.fail("TX0002")
        with pytest.raises(SubmissionRejectedError):
            await task

        fake_ledger.auto_confirm = True
        stake = await stake_ledger.escrow(claim.id, BOB, "support", 1)

        assert stake.ledger_tx_id == "TX0003"
        assert (await store.get_claim(claim.id)).verification_count == 1

    async def test_timeout_leaves_counters_untouched(self, claim, stake_ledger, store, fake_ledger, short_timeout):
        fake_ledger.auto_confirm = False

        with pytest.raises(ConfirmationTimedOutError):
            await stake_ledger.escrow(claim.id, BOB, "support", 1)

        record = await store.find_transaction(claim.id, BOB)
        assert record.status == TransactionStatus.SUBMITTED
        stored = await store.get_claim(claim.id)
        assert stored.verification_count == 0
        assert stored.total_staked == Decimal("1")
        assert await store.get_stake(claim.id, BOB) is None

    async def test_retry_after_timeout_resumes_without_paying_again(
        self, claim, stake_ledger, store, fake_ledger, short_timeout
    ):
        fake_ledger.auto_confirm = False
        with pytest.raises(ConfirmationTimedOutError):
            await stake_ledger.escrow(claim.id, BOB, "support", 1)

        fake_ledger.confirm("TX0002")
        stake = await stake_ledger.escrow(claim.id, BOB, "support", 1)

        assert stake.ledger_tx_id == "TX0002"
        assert len(fake_ledger.submissions) == 2
        assert (await store.get_transaction("TX0002")).status == TransactionStatus.CONFIRMED
        assert (await store.get_claim(claim.id)).verification_count == 1

    async def test_retry_waits_on_still_pending_transaction(
        self, claim, stake_ledger, store, fake_ledger, short_timeout
    ):
        fake_ledger.auto_confirm = False
        with pytest.raises(ConfirmationTimedOutError):
            await stake_ledger.escrow(claim.id, BOB, "support", 1)

        retry = asyncio.create_task(stake_ledger.escrow(claim.id, BOB, "support", 1))
        await asyncio.sleep(0.01)
        fake_ledger.confirm("TX0002")
        stake = await retry

        assert stake.ledger_tx_id == "TX0002"
        assert len(fake_ledger.submissions) == 2

    async def test_cancellation_leaves_counters_untouched(self, claim, stake_ledger, store, fake_ledger):
        fake_ledger.auto_confirm = False
        task = asyncio.create_task(stake_ledger.escrow(claim.id, BOB, "support", 1))
        await wait_for_submissions(fake_ledger, 2)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert (await store.get_transaction("TX0002")).status == TransactionStatus.SUBMITTED
        assert (await store.get_claim(claim.id)).verification_count == 0

        fake_ledger.confirm("TX0002")
        stake = await stake_ledger.escrow(claim.id, BOB, "support", 1)
        assert stake.ledger_tx_id == "TX0002"
        assert len(fake_ledger.submissions) == 2

    async def test_dropped_transaction_is_resubmitted(
        self, claim, stake_ledger, store, fake_ledger, short_timeout
    ):
        fake_ledger.auto_confirm = False
        with pytest.raises(ConfirmationTimedOutError):
            await stake_ledger.escrow(claim.id, BOB, "support", 1)

        fake_ledger.forget("TX0002")
        fake_ledger.auto_confirm = True
        stake = await stake_ledger.escrow(claim.id, BOB, "support", 1)

        assert stake.ledger_tx_id == "TX0003"
        dropped = await store.get_transaction("TX0002")
        assert dropped.status == TransactionStatus.FAILED
        assert dropped.error == "transaction dropped from pool"

    async def test_confirmed_on_indexer_after_leaving_pool(
        self, claim, stake_ledger, store, fake_ledger, short_timeout
    ):
        fake_ledger.auto_confirm = False
        with pytest.raises(ConfirmationTimedOutError):
            await stake_ledger.escrow(claim.id, BOB, "support", 1)

        fake_ledger.confirm("TX0002")
        fake_ledger.get_transaction_status = AsyncMock(
            return_value=TransactionStatusInfo("TX0002", TransactionState.NOT_FOUND)
        )
        stake = await stake_ledger.escrow(claim.id, BOB, "support", 1)

        assert stake.ledger_tx_id == "TX0002"
        assert len(fake_ledger.submissions) == 2

    async def test_confirmation_after_window_closed_is_unapplied(
        self, claim, stake_ledger, store, fake_ledger, clock
    ):
        fake_ledger.auto_confirm = False
        task = asyncio.create_task(stake_ledger.escrow(claim.id, BOB, "support", 1))
        await wait_for_submissions(fake_ledger, 2)

        clock.advance(hours=25)
        fake_ledger.confirm("TX0002")
        with pytest.raises(ClaimNotAcceptingStakesError):
            await task

        record = await store.get_transaction("TX0002")
        assert record.status == TransactionStatus.UNAPPLIED
        assert record.block_ref is not None
        stored = await store.get_claim(claim.id)
        assert stored.verification_count == 0
        assert stored.total_staked == Decimal("1")

    async def test_retry_finishes_stake_whose_confirmation_was_lost(
        self, claim, stake_ledger, store, fake_ledger, lose_first_confirmation
    ):
        with pytest.raises(DatabaseException):
            await stake_ledger.escrow(claim.id, BOB, "support", 1)
        assert (await store.get_transaction("TX0002")).status == TransactionStatus.SUBMITTED
        assert await store.get_profile(BOB) is None

        stake = await stake_ledger.escrow(claim.id, BOB, "support", 1)

        assert stake.ledger_tx_id == "TX0002"
        assert fake_ledger.submissions == ["TX0001", "TX0002"]
        assert (await store.get_transaction("TX0002")).status == TransactionStatus.CONFIRMED
        assert (await store.get_profile(BOB)).total_stakes == 1
        assert (await store.get_claim(claim.id)).verification_count == 1

        with pytest.raises(DuplicateStakeError):
            await stake_ledger.escrow(claim.id, BOB, "support", 1)

    async def test_already_applied_stake_is_reconciled(
        self, claim, stake_ledger, store, fake_ledger, lose_first_confirmation
    ):
        with pytest.raises(DatabaseException):
            await stake_ledger.escrow(claim.id, BOB, "support", 1)

        stake = await stake_ledger._escrow_locked(
            claim, BOB, StakeSide.SUPPORT, Decimal("1"), TransactionKind.VERIFICATION_STAKE
        )

        assert stake.ledger_tx_id == "TX0002"
        assert (await store.get_transaction("TX0002")).status == TransactionStatus.CONFIRMED
        assert (await store.get_profile(BOB)).total_stakes == 1
        assert (await store.get_claim(claim.id)).verification_count == 1


class TestCreationStake:
    async def test_requires_draft(self, claim, stake_ledger):
        with pytest.raises(ClaimNotAcceptingStakesError):
            await stake_ledger.escrow_creation_stake(claim, 1)

    async def test_memo_kind(self, claim, fake_ledger):
        assert json.loads(fake_ledger.transactions["TX0001"]["note"])["type"] == "claim_stake"


def test_build_memo_is_compact_and_sorted():
    memo = build_memo(TransactionKind.VERIFICATION_STAKE, "c-1", StakeSide.OPPOSE)
    assert memo == '{"app":"truthchain","claim":"c-1","side":"oppose","type":"verification_stake"}'
