# SPDX-License-Identifier: MIT
# Copyright (c) 2026 TruthChain Contributors

"""Ledger network client.

Talks to an Algorand-style node REST API (algod) for balances, suggested
params, submission and pending status, and to the indexer for explorer
lookups. Every failure surfaces as a typed exception from
``truthchain.core.exceptions``; nothing here swallows errors except
``check_network_status``, which reports health instead of raising.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from decimal import Decimal
from typing import Any

import aiohttp

from ..core.config import CoreSettings, get_config
from ..core.exceptions import (
    ConfirmationTimedOutError,
    InsufficientFundsError,
    LedgerUnreachableError,
    SubmissionRejectedError,
    ValidationException,
)
from ..core.tasks import ScheduledTask
from .address import require_valid_address
from .amounts import as_amount, from_microunits, to_microunits
from .models import (
    BalanceCache,
    Confirmation,
    NetworkStatus,
    PaymentIntent,
    SuggestedParams,
    TransactionDetails,
    TransactionState,
    TransactionStatusInfo,
)
from .signing import TransactionSigner

logger = logging.getLogger(__name__)

MAX_NOTE_BYTES = 1024


class LedgerClient:
    """Async client for the ledger node and indexer.

    The client owns one ``aiohttp.ClientSession`` (created on first use unless
    one is injected) and the balance cache. Use as an async context manager
    or call ``aclose()`` when done.
    """

    def __init__(
        self,
        signer: TransactionSigner | None = None,
        *,
        settings: CoreSettings | None = None,
        session: aiohttp.ClientSession | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or get_config()
        self.signer = signer
        self.algod_url = self.settings.node_url.rstrip("/")
        self.indexer_url = self.settings.indexer_api_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._clock = clock
        self._balances = BalanceCache(ttl=self.settings.balance_cache_ttl)

    async def __aenter__(self) -> LedgerClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            headers = {}
            if self.settings.algod_token:
                headers["X-Algo-API-Token"] = self.settings.algod_token
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.settings.ledger_timeout),
            )
            self._owns_session = True
        return self._session

    async def _request(
        self,
        method: str,
        url: str,
        *,
        data: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> tuple[int, Any]:
        """Perform one request and return ``(status, parsed body)``.

        Transport errors and 5xx responses raise LedgerUnreachableError.
        4xx responses are returned to the caller, which decides what they mean.
        """
        session = self._get_session()
        try:
            async with session.request(method, url, data=data, headers=headers) as response:
                status = response.status
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    body = {"message": await response.text()}
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise LedgerUnreachableError(url, str(e) or e.__class__.__name__) from e

        if status >= 500:
            raise LedgerUnreachableError(url, f"HTTP {status}")
        return status, body if body is not None else {}

    # =========================================================================
    # Balances
    # =========================================================================

    async def get_balance(self, address: str, *, fresh: bool = False) -> Decimal:
        """Return the account balance in units.

        Unknown accounts (HTTP 404) have a balance of zero.
        """
        require_valid_address(address)
        now = self._clock()
        if not fresh:
            cached = self._balances.get(address, now)
            if cached is not None:
                return cached

        status, body = await self._request("GET", f"{self.algod_url}/v2/accounts/{address}")
        if status == 404:
            balance = Decimal(0)
        elif status >= 400:
            raise LedgerUnreachableError(self.algod_url, _error_message(body, status))
        else:
            balance = from_microunits(body.get("amount", 0))

        self._balances.put(address, balance, self._clock())
        return balance

    # =========================================================================
    # Submission
    # =========================================================================

    async def get_suggested_params(self) -> SuggestedParams:
        status, body = await self._request("GET", f"{self.algod_url}/v2/transactions/params")
        if status >= 400:
            raise LedgerUnreachableError(self.algod_url, _error_message(body, status))
        return SuggestedParams.from_response(body)

    async def submit_stake(
        self,
        sender: str,
        receiver: str,
        amount: Decimal | int | str,
        memo: str,
    ) -> str:
        """Sign and submit a stake payment. Returns the transaction id.

        The balance is always read fresh here; a cached value is never used to
        decide whether a payment can be afforded.
        """
        require_valid_address(sender, "sender")
        require_valid_address(receiver, "receiver")
        amount = as_amount(amount)
        if amount <= 0:
            raise ValidationException("Amount must be positive", "amount", amount)
        note = memo.encode("utf-8")
        if len(note) > MAX_NOTE_BYTES:
            raise ValidationException(f"Memo exceeds {MAX_NOTE_BYTES} bytes", "memo", len(note))
        if self.signer is None:
            raise ValidationException("No transaction signer configured", "signer")

        balance = await self.get_balance(sender, fresh=True)
        available = balance - self.settings.fee_buffer
        if amount > available:
            raise InsufficientFundsError(sender, amount, max(available, Decimal(0)))

        params = await self.get_suggested_params()
        intent = PaymentIntent(
            sender=sender,
            receiver=receiver,
            amount=to_microunits(amount),
            note=note,
            params=params,
        )
        signed = await self.signer.sign(intent)

        url = f"{self.algod_url}/v2/transactions"
        status, body = await self._request(
            "POST",
            url,
            data=signed,
            headers={"Content-Type": "application/x-binary"},
        )
        if status >= 400:
            reason = _error_message(body, status)
            logger.warning(
                f"Transaction from {sender} rejected: {reason}",
                extra={"extra_data": {"sender": sender, "amount": str(amount), "status": status}},
            )
            raise SubmissionRejectedError(reason)

        tx_id = body.get("txId") or body.get("txid")
        if not tx_id:
            raise SubmissionRejectedError("Node response carried no transaction id")

        self._balances.invalidate(sender)
        logger.info(
            f"Submitted transaction {tx_id}",
            extra={"extra_data": {"tx_id": tx_id, "sender": sender, "amount": str(amount)}},
        )
        return tx_id

    # =========================================================================
    # Status and confirmation
    # =========================================================================

    async def get_transaction_status(self, tx_id: str) -> TransactionStatusInfo:
        status, body = await self._request(
            "GET", f"{self.algod_url}/v2/transactions/pending/{tx_id}"
        )
        if status == 404:
            return TransactionStatusInfo(tx_id, TransactionState.NOT_FOUND)
        if status >= 400:
            raise LedgerUnreachableError(self.algod_url, _error_message(body, status))
        return TransactionStatusInfo.from_pending_response(tx_id, body)

    def await_confirmation(
        self, tx_id: str, timeout: float | None = None
    ) -> ScheduledTask[Confirmation]:
        """Start polling for ``tx_id`` and return a cancellable handle.

        The handle resolves to a Confirmation, or raises
        SubmissionRejectedError (pool error) or ConfirmationTimedOutError.
        """
        if timeout is None:
            timeout = self.settings.confirmation_timeout
        return ScheduledTask(self._poll_confirmation(tx_id, timeout), name=f"confirm-{tx_id}")

    async def _poll_confirmation(self, tx_id: str, timeout: float) -> Confirmation:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        interval = self.settings.confirmation_poll_interval

        while True:
            try:
                info = await self.get_transaction_status(tx_id)
            except LedgerUnreachableError as e:
                logger.warning(f"Status poll for {tx_id} failed, retrying: {e}")
            else:
                if info.state == TransactionState.CONFIRMED:
                    logger.info(f"Transaction {tx_id} confirmed in round {info.confirmed_round}")
                    return Confirmation(tx_id, True, info.confirmed_round or 0)
                if info.state == TransactionState.FAILED:
                    raise SubmissionRejectedError(info.pool_error or "rejected by pool", tx_id)

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ConfirmationTimedOutError(tx_id, timeout)
            await asyncio.sleep(min(interval, remaining))

    # =========================================================================
    # Explorer support
    # =========================================================================

    async def lookup_transaction(self, tx_id: str) -> TransactionDetails | None:
        """Find a transaction on the indexer, falling back to the pending pool.

        Returns None when neither knows the id.
        """
        status, body = await self._request("GET", f"{self.indexer_url}/v2/transactions/{tx_id}")
        if status < 400 and body.get("transaction"):
            return TransactionDetails.from_indexer(body["transaction"])
        if status >= 400 and status != 404:
            raise LedgerUnreachableError(self.indexer_url, _error_message(body, status))

        status, body = await self._request(
            "GET", f"{self.algod_url}/v2/transactions/pending/{tx_id}"
        )
        if status == 404:
            return None
        if status >= 400:
            raise LedgerUnreachableError(self.algod_url, _error_message(body, status))
        return TransactionDetails.from_pending(tx_id, body)

    async def check_network_status(self) -> NetworkStatus:
        """Report node health. Never raises."""
        try:
            status, body = await self._request("GET", f"{self.algod_url}/v2/status")
        except LedgerUnreachableError as e:
            logger.warning(f"Ledger health check failed: {e}")
            return NetworkStatus(healthy=False, error=str(e))
        if status >= 400:
            return NetworkStatus(healthy=False, error=_error_message(body, status))
        return NetworkStatus(
            healthy=True,
            last_round=int(body.get("last-round", 0)),
            time_since_last_round_ms=int(body.get("time-since-last-round", 0)) // 1_000_000,
        )


def _error_message(body: Any, status: int) -> str:
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {status}"
