"""Tests for truthchain.ledger.client - LedgerClient against a fake aiohttp session."""

from __future__ import annotations

import asyncio
import base64
from decimal import Decimal

import aiohttp
import pytest

from tests.fakes import ALICE, BOB, ESCROW, FakeSession, FakeSigner
from truthchain.core.exceptions import (
    ConfirmationTimedOutError,
    InsufficientFundsError,
    LedgerUnreachableError,
    SigningDeclinedError,
    SubmissionRejectedError,
    ValidationException,
)
from truthchain.ledger.client import LedgerClient
from truthchain.ledger.models import Confirmation, TransactionState

PARAMS = {
    "last-round": 500,
    "fee": 0,
    "min-fee": 1000,
    "genesis-id": "testnet-v1.0",
    "genesis-hash": "SGO1GKSzyE7IEPItTxCByw9x8FmnrCDexi9/cOUJOiI=",
}


class Router:
    """Map (method, path) to a list of responses, consumed in order."""

    def __init__(self, routes=None):
        self.routes = routes or {}

    def __call__(self, method, url, data):
        path = url.split(".test", 1)[1]
        responses = self.routes.get((method, path))
        if responses is None:
            return (404, {"message": "no route"})
        if isinstance(responses, list):
            return responses.pop(0) if len(responses) > 1 else responses[0]
        return responses


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


def make_client(settings, routes, signer=None, clock=None):
    session = FakeSession(Router(routes))
    client = LedgerClient(signer, settings=settings, session=session, clock=clock or Clock())
    return client, session


def paths(session, method=None):
    return [url for m, url, _, _ in session.requests if method is None or m == method]


# ============================================================================
# Balances
# ============================================================================


class TestGetBalance:
    async def test_converts_microunits(self, settings):
        client, _ = make_client(settings, {("GET", f"/v2/accounts/{ALICE}"): (200, {"amount": 5_250_000})})
        assert await client.get_balance(ALICE) == Decimal("5.25")

    async def test_unknown_account_is_zero(self, settings):
        client, _ = make_client(settings, {})
        assert await client.get_balance(ALICE) == Decimal(0)

    async def test_invalid_address_never_hits_network(self, settings):
        client, session = make_client(settings, {})
        with pytest.raises(ValidationException):
            await client.get_balance("not-an-address")
        assert session.requests == []

    async def test_server_error_is_unreachable(self, settings):
        client, _ = make_client(settings, {("GET", f"/v2/accounts/{ALICE}"): (503, {"message": "busy"})})
        with pytest.raises(LedgerUnreachableError):
            await client.get_balance(ALICE)

    async def test_client_error_is_unreachable(self, settings):
        client, _ = make_client(settings, {("GET", f"/v2/accounts/{ALICE}"): (400, {"message": "bad"})})
        with pytest.raises(LedgerUnreachableError, match="bad"):
            await client.get_balance(ALICE)

    async def test_transport_error_is_unreachable(self, settings):
        client, _ = make_client(
            settings, {("GET", f"/v2/accounts/{ALICE}"): aiohttp.ClientConnectionError("refused")}
        )
        with pytest.raises(LedgerUnreachableError, match="refused"):
            await client.get_balance(ALICE)

    async def test_non_json_body(self, settings):
        client, _ = make_client(settings, {("GET", f"/v2/accounts/{ALICE}"): (400, b"plain failure")})
        with pytest.raises(LedgerUnreachableError, match="plain failure"):
            await client.get_balance(ALICE)


class TestBalanceCache:
    async def test_cached_within_ttl(self, settings, clock):
        client, session = make_client(
            settings, {("GET", f"/v2/accounts/{ALICE}"): (200, {"amount": 1_000_000})}, clock=clock
        )
        await client.get_balance(ALICE)
        clock.now += settings.balance_cache_ttl / 2
        await client.get_balance(ALICE)
        assert len(session.requests) == 1

    async def test_expires_after_ttl(self, settings, clock):
        client, session = make_client(
            settings, {("GET", f"/v2/accounts/{ALICE}"): (200, {"amount": 1_000_000})}, clock=clock
        )
        await client.get_balance(ALICE)
        clock.now += settings.balance_cache_ttl + 1
        await client.get_balance(ALICE)
        assert len(session.requests) == 2

    async def test_fresh_bypasses_cache(self, settings):
        client, session = make_client(
            settings,
            {("GET", f"/v2/accounts/{ALICE}"): [(200, {"amount": 1_000_000}), (200, {"amount": 3_000_000})]},
        )
        assert await client.get_balance(ALICE) == Decimal("1")
        assert await client.get_balance(ALICE, fresh=True) == Decimal("3")
        assert await client.get_balance(ALICE) == Decimal("3")
        assert len(session.requests) == 2


# ============================================================================
# Submission
# ============================================================================


def submit_routes(balance=10_000_000, post=(200, {"txId": "TXABC"})):
    return {
        ("GET", f"/v2/accounts/{ALICE}"): (200, {"amount": balance}),
        ("GET", "/v2/transactions/params"): (200, PARAMS),
        ("POST", "/v2/transactions"): post,
    }


class TestSubmitStake:
    async def test_signs_and_submits(self, settings, signer):
        client, session = make_client(settings, submit_routes(), signer=signer)

        tx_id = await client.submit_stake(ALICE, ESCROW, Decimal("2"), '{"app":"truthchain"}')

        assert tx_id == "TXABC"
        intent = signer.intents[0]
        assert intent.amount == 2_000_000
        assert intent.receiver == ESCROW
        assert intent.note == b'{"app":"truthchain"}'
        assert intent.params.first_valid == 500
        assert intent.params.last_valid == 1500

        method, url, data, headers = session.requests[-1]
        assert method == "POST"
        assert data == f"signed:{ALICE}:2000000".encode()
        assert headers == {"Content-Type": "application/x-binary"}

    async def test_balance_read_fresh(self, settings, signer):
        client, session = make_client(settings, submit_routes(), signer=signer)
        await client.get_balance(ALICE)
        await client.submit_stake(ALICE, ESCROW, 1, "memo")
        assert paths(session).count(f"http://algod.test/v2/accounts/{ALICE}") == 2

    async def test_cache_invalidated_after_submit(self, settings, signer):
        client, session = make_client(settings, submit_routes(), signer=signer)
        await client.submit_stake(ALICE, ESCROW, 1, "memo")
        await client.get_balance(ALICE)
        assert paths(session).count(f"http://algod.test/v2/accounts/{ALICE}") == 2

    async def test_insufficient_funds_respects_fee_buffer(self, settings, signer):
        client, session = make_client(settings, submit_routes(balance=2_000_000), signer=signer)

        with pytest.raises(InsufficientFundsError) as exc_info:
            await client.submit_stake(ALICE, ESCROW, Decimal("2"), "memo")

        assert exc_info.value.available == Decimal("1.9")
        assert signer.intents == []
        assert paths(session, "POST") == []

    async def test_exact_available_balance_allowed(self, settings, signer):
        client, _ = make_client(settings, submit_routes(balance=2_100_000), signer=signer)
        assert await client.submit_stake(ALICE, ESCROW, Decimal("2"), "memo") == "TXABC"

    async def test_rejection_carries_node_reason(self, settings, signer):
        routes = submit_routes(post=(400, {"message": "TransactionPool.Remember: overspend"}))
        client, _ = make_client(settings, routes, signer=signer)

        with pytest.raises(SubmissionRejectedError) as exc_info:
            await client.submit_stake(ALICE, ESCROW, 1, "memo")
        assert "overspend" in exc_info.value.reason

    async def test_missing_tx_id_is_rejection(self, settings, signer):
        client, _ = make_client(settings, submit_routes(post=(200, {})), signer=signer)
        with pytest.raises(SubmissionRejectedError):
            await client.submit_stake(ALICE, ESCROW, 1, "memo")

    async def test_signing_declined(self, settings, signer):
        signer.decline = True
        client, session = make_client(settings, submit_routes(), signer=signer)
        with pytest.raises(SigningDeclinedError):
            await client.submit_stake(ALICE, ESCROW, 1, "memo")
        assert paths(session, "POST") == []

    async def test_requires_signer(self, settings):
        client, session = make_client(settings, submit_routes())
        with pytest.raises(ValidationException, match="signer"):
            await client.submit_stake(ALICE, ESCROW, 1, "memo")
        assert session.requests == []

    @pytest.mark.parametrize("amount", [0, -1, "abc"])
    async def test_bad_amount(self, settings, amount):
        client, session = make_client(settings, submit_routes(), signer=FakeSigner())
        with pytest.raises(ValidationException):
            await client.submit_stake(ALICE, ESCROW, amount, "memo")
        assert session.requests == []

    async def test_invalid_receiver(self, settings, signer):
        client, _ = make_client(settings, submit_routes(), signer=signer)
        with pytest.raises(ValidationException) as exc_info:
            await client.submit_stake(ALICE, "escrow", 1, "memo")
        assert exc_info.value.field == "receiver"

    async def test_memo_too_long(self, settings, signer):
        client, _ = make_client(settings, submit_routes(), signer=signer)
        with pytest.raises(ValidationException, match="Memo"):
            await client.submit_stake(ALICE, ESCROW, 1, "x" * 1025)


# ============================================================================
# Status and confirmation
# ============================================================================


def pending_route(*responses):
    return {("GET", "/v2/transactions/pending/TX1"): list(responses)}


class TestTransactionStatus:
    @pytest.mark.parametrize(
        "response,state",
        [
            ((404, {"message": "not found"}), TransactionState.NOT_FOUND),
            ((200, {"confirmed-round": 12, "pool-error": ""}), TransactionState.CONFIRMED),
            ((200, {"confirmed-round": 0, "pool-error": "overspend"}), TransactionState.FAILED),
            ((200, {"pool-error": ""}), TransactionState.PENDING),
        ],
    )
    async def test_states(self, settings, response, state):
        client, _ = make_client(settings, pending_route(response))
        info = await client.get_transaction_status("TX1")
        assert info.state == state


class TestAwaitConfirmation:
    async def test_polls_until_confirmed(self, settings):
        client, session = make_client(
            settings,
            pending_route((200, {}), (200, {}), (200, {"confirmed-round": 77})),
        )
        confirmation = await client.await_confirmation("TX1")
        assert confirmation == Confirmation("TX1", True, 77)
        assert len(session.requests) == 3

    async def test_pool_error_rejects(self, settings):
        client, _ = make_client(settings, pending_route((200, {}), (200, {"pool-error": "fee too small"})))
        with pytest.raises(SubmissionRejectedError) as exc_info:
            await client.await_confirmation("TX1")
        assert exc_info.value.reason == "fee too small"
        assert exc_info.value.tx_id == "TX1"

    async def test_times_out(self, settings):
        client, _ = make_client(settings, pending_route((200, {})))
        with pytest.raises(ConfirmationTimedOutError) as exc_info:
            await client.await_confirmation("TX1", timeout=0.05)
        assert exc_info.value.tx_id == "TX1"

    async def test_transport_error_is_retried(self, settings):
        client, _ = make_client(
            settings,
            pending_route(aiohttp.ClientConnectionError("reset"), (200, {"confirmed-round": 9})),
        )
        confirmation = await client.await_confirmation("TX1")
        assert confirmation.block_ref == 9

    async def test_handle_is_cancellable(self, settings):
        client, session = make_client(settings, pending_route((200, {})))
        handle = client.await_confirmation("TX1", timeout=10)
        await asyncio.sleep(0.03)
        handle.cancel()

        with pytest.raises(asyncio.CancelledError):
            await handle
        polls = len(session.requests)
        await asyncio.sleep(0.03)
        assert len(session.requests) == polls


# ============================================================================
# Explorer support
# ============================================================================


def b64(text):
    return base64.b64encode(text.encode()).decode()


class TestLookupTransaction:
    async def test_indexer_hit(self, settings):
        client, _ = make_client(
            settings,
            {
                ("GET", "/v2/transactions/TX1"): (
                    200,
                    {
                        "transaction": {
                            "id": "TX1",
                            "sender": ALICE,
                            "confirmed-round": 321,
                            "note": b64('{"app":"truthchain"}'),
                            "payment-transaction": {"amount": 3_000_000, "receiver": ESCROW},
                        }
                    },
                )
            },
        )
        details = await client.lookup_transaction("TX1")
        assert details.amount == Decimal("3")
        assert details.sender == ALICE
        assert details.receiver == ESCROW
        assert details.status == TransactionState.CONFIRMED
        assert details.block_ref == 321
        assert details.note == '{"app":"truthchain"}'

    async def test_falls_back_to_pending_pool(self, settings):
        client, session = make_client(
            settings,
            pending_route((200, {"txn": {"txn": {"amt": 1_500_000, "snd": BOB, "rcv": ESCROW, "note": b64("hi")}}})),
        )
        details = await client.lookup_transaction("TX1")
        assert details.status == TransactionState.PENDING
        assert details.amount == Decimal("1.5")
        assert details.note == "hi"
        assert paths(session) == [
            "http://indexer.test/v2/transactions/TX1",
            "http://algod.test/v2/transactions/pending/TX1",
        ]

    async def test_unknown_everywhere(self, settings):
        client, _ = make_client(settings, {})
        assert await client.lookup_transaction("TX1") is None

    async def test_indexer_outage_raises(self, settings):
        client, _ = make_client(settings, {("GET", "/v2/transactions/TX1"): (502, {})})
        with pytest.raises(LedgerUnreachableError):
            await client.lookup_transaction("TX1")


class TestNetworkStatus:
    async def test_healthy(self, settings):
        client, _ = make_client(
            settings, {("GET", "/v2/status"): (200, {"last-round": 100, "time-since-last-round": 2_500_000_000})}
        )
        status = await client.check_network_status()
        assert status.healthy is True
        assert status.last_round == 100
        assert status.time_since_last_round_ms == 2500

    async def test_unreachable_never_raises(self, settings):
        client, _ = make_client(settings, {("GET", "/v2/status"): aiohttp.ClientConnectionError("down")})
        status = await client.check_network_status()
        assert status.healthy is False
        assert "down" in status.error


class TestSessionOwnership:
    async def test_injected_session_left_open(self, settings):
        client, session = make_client(settings, {})
        async with client:
            pass
        assert session.closed is False
