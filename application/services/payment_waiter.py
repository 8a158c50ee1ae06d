"""
Long-polling until a payment settles.

There is no push channel to fall back on here, so waiting is a plain
sequential loop: fetch, classify, sleep. One fetch is in flight at a time.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from core.logging_config import get_logger
from domain.common.exceptions import (
    DomainValidationException,
    PaymentFailedException,
    PaymentWaitCancelledException,
    PaymentWaitTimeoutException,
)
from domain.payment.entity import Payment
from domain.payment.state_machine import PaymentStateMachine


logger = get_logger(__name__)

FetchPayment = Callable[[str], Awaitable[Payment]]


class PaymentWaiter:
    def __init__(
        self,
        fetch: FetchPayment,
        *,
        accept_partial: bool = False,
        state_machine: type[PaymentStateMachine] = PaymentStateMachine,
    ) -> None:
        """
        Args:
            fetch: coroutine returning the current snapshot for a payment id
            accept_partial: resolve on PARTIALLY_PAID instead of waiting for
                CONFIRMED
        """
        self._fetch = fetch
        self.accept_partial = accept_partial
        self._sm = state_machine

    async def wait(
        self,
        payment_id: str,
        timeout: float,
        poll_interval: float,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Payment:
        """Poll ``payment_id`` until it is paid, fails, or time runs out.

        Returns the paid snapshot (or the partially paid one when
        ``accept_partial`` is set).

        Raises:
            PaymentFailedException: terminal status other than CONFIRMED
            PaymentWaitTimeoutException: ``timeout`` seconds elapsed
            PaymentWaitCancelledException: ``cancel_event`` was set
        """
        _require_positive("timeout", timeout)
        _require_positive("poll_interval", poll_interval)

        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + timeout
        attempts = 0
        last: Optional[Payment] = None

        while True:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("payment_wait_cancelled", payment_id=payment_id, attempts=attempts)
                raise PaymentWaitCancelledException(payment_id, attempts=attempts)

            tick = loop.time()
            if tick >= deadline:
                raise self._timeout(payment_id, timeout, tick - started, attempts, last)

            payment = await self._fetch(payment_id)
            attempts += 1
            if last is not None and not self._sm.can_transition(last.status, payment.status):
                logger.warning(
                    "payment_status_out_of_order",
                    payment_id=payment_id,
                    previous=last.status.value,
                    current=payment.status.value,
                )
            last = payment
            logger.debug(
                "payment_wait_poll",
                payment_id=payment_id,
                attempt=attempts,
                status=payment.status.value,
            )

            if self._sm.is_paid(payment):
                logger.info("payment_wait_paid", payment_id=payment_id, attempts=attempts)
                return payment
            if self.accept_partial and self._sm.is_partially_paid(payment):
                logger.info("payment_wait_partially_paid", payment_id=payment_id, attempts=attempts)
                return payment
            if self._sm.is_final(payment):
                logger.info(
                    "payment_wait_failed",
                    payment_id=payment_id,
                    attempts=attempts,
                    status=payment.status.value,
                )
                raise PaymentFailedException(payment)

            now = loop.time()
            if now >= deadline:
                # the last fetch straddled the deadline
                raise self._timeout(payment_id, timeout, now - started, attempts, last)

            # interval is measured from the start of the fetch; a slow fetch
            # is followed immediately by the next one
            delay = min(max(tick + poll_interval - now, 0.0), deadline - now)
            if await self._sleep(delay, cancel_event):
                logger.info("payment_wait_cancelled", payment_id=payment_id, attempts=attempts)
                raise PaymentWaitCancelledException(payment_id, attempts=attempts)

    @staticmethod
    async def _sleep(delay: float, cancel_event: Optional[asyncio.Event]) -> bool:
        """Sleep ``delay`` seconds; return True if cancelled meanwhile."""
        if cancel_event is None:
            await asyncio.sleep(delay)
            return False
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    @staticmethod
    def _timeout(payment_id, timeout, elapsed, attempts, last) -> PaymentWaitTimeoutException:
        logger.warning(
            "payment_wait_timeout",
            payment_id=payment_id,
            timeout=timeout,
            attempts=attempts,
        )
        return PaymentWaitTimeoutException(
            payment_id,
            timeout=timeout,
            elapsed=elapsed,
            attempts=attempts,
            last_status=last.status if last is not None else None,
        )


def _require_positive(name: str, value: float) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value > 0:
        raise DomainValidationException(
            f"{name} must be a positive number of seconds",
            field=name,
            expected="> 0",
            received=value,
        )
