"""
Checkout Service - Lightning payment lifecycle for one basket

A CheckoutSession turns the current basket into an invoice and watches it
until it is paid. Settlement can arrive on two paths that race each other
on the event loop:

- push: the connector calls the session's listener when the wallet reports
  the payment
- poll: a background task asks the connector every poll interval

Whichever path arrives first settles the session. _settle() is the only
place the session moves to Settled, and it never awaits, so the state
check and the state change happen in one step.

States:
    Idle -> InvoiceRequested -> AwaitingSettlement -> Settled
                             \\-> Failed
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Union

from app.connectors.lightning_connector import LightningConnector, get_lightning_connector
from app.core.config import settings
from app.domain.basket import BasketEntry
from app.domain.errors import CheckoutError, EmptyBasket
from app.domain.invoice import Invoice
from app.repositories.basket_repository import BasketRepository, get_basket_repository

logger = logging.getLogger(__name__)

MEMO_PREFIX = "POS Payment: "


class CheckoutStatus(str, Enum):
    IDLE = "idle"
    INVOICE_REQUESTED = "invoice_requested"
    AWAITING_SETTLEMENT = "awaiting_settlement"
    SETTLED = "settled"
    FAILED = "failed"


class SettlementSource(str, Enum):
    PUSH = "push"
    POLL = "poll"


# ============================================================================
# Session states
# ============================================================================

@dataclass(frozen=True)
class Idle:
    status = CheckoutStatus.IDLE


@dataclass(frozen=True)
class InvoiceRequested:
    status = CheckoutStatus.INVOICE_REQUESTED


@dataclass(frozen=True)
class AwaitingSettlement:
    invoice: Invoice
    status = CheckoutStatus.AWAITING_SETTLEMENT


@dataclass(frozen=True)
class Settled:
    invoice: Invoice
    source: SettlementSource
    status = CheckoutStatus.SETTLED


@dataclass(frozen=True)
class Failed:
    error: str
    status = CheckoutStatus.FAILED


CheckoutState = Union[Idle, InvoiceRequested, AwaitingSettlement, Settled, Failed]


def build_memo(entries: List[BasketEntry]) -> str:
    """Invoice description listing each basket line, e.g. 'POS Payment: 2x Coffee'"""
    return MEMO_PREFIX + ", ".join(f"{entry.quantity}x {entry.name}" for entry in entries)


class CheckoutSession:
    """
    One checkout attempt for the current basket

    A session is used once: start() it, then wait for settlement or close()
    it when the customer leaves. A new order always gets a new session.

    Args:
        basket: Basket the invoice is built from and cleared on payment
        connector: Lightning connector issuing and tracking the invoice
        on_settled: Called once with the settled Invoice
        on_failed: Called once with the exception if issuance fails
        poll_interval: Seconds between status polls
    """

    def __init__(
        self,
        basket: BasketRepository,
        connector: LightningConnector,
        on_settled: Optional[Callable[[Invoice], None]] = None,
        on_failed: Optional[Callable[[Exception], None]] = None,
        poll_interval: Optional[float] = None,
    ):
        self.basket = basket
        self.connector = connector
        self.on_settled = on_settled
        self.on_failed = on_failed
        self.poll_interval = (
            poll_interval if poll_interval is not None
            else settings.CHECKOUT_POLL_INTERVAL_SECONDS
        )

        self.state: CheckoutState = Idle()
        self.snapshot: List[BasketEntry] = []

        self._started = False
        self._closed = False
        self._poll_task: Optional[asyncio.Task] = None
        self._finished = asyncio.Event()

    @property
    def status(self) -> CheckoutStatus:
        return self.state.status

    @property
    def invoice(self) -> Optional[Invoice]:
        if isinstance(self.state, (AwaitingSettlement, Settled)):
            return self.state.invoice
        return None

    @property
    def closed(self) -> bool:
        return self._closed

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start(self) -> Invoice:
        """
        Issue the invoice for the current basket and begin watching it

        Returns:
            The unsettled Invoice to show to the customer

        Raises:
            EmptyBasket: If the basket has no entries (session stays Idle)
            CheckoutError: If the session was already started or closed
            InvalidAmount, GatewayUnavailable: If issuance fails (session
                moves to Failed)
        """
        if self._closed:
            raise CheckoutError("Checkout session is closed")
        if self._started:
            raise CheckoutError("Checkout session already started")

        entries = self.basket.get_basket()
        if not entries:
            raise EmptyBasket()

        self._started = True
        self.snapshot = entries
        self.state = InvoiceRequested()

        amount = self.basket.get_total()
        memo = build_memo(entries)

        try:
            invoice = await self.connector.issue_invoice(amount, memo)
        except Exception as e:
            self._fail(e)
            raise

        if self._closed:
            logger.info(f"Session closed while invoice {invoice.id[:24]}... was issued")
            return invoice

        self.state = AwaitingSettlement(invoice)
        self.connector.subscribe_settlement(invoice.id, self._on_push)
        self._poll_task = asyncio.create_task(self._poll_loop(invoice.id))

        logger.info(f"Awaiting settlement of {amount} sats for {len(entries)} basket lines")
        return invoice

    def _on_push(self, settled: bool) -> None:
        if settled:
            self._settle(SettlementSource.PUSH)

    async def _poll_loop(self, invoice_id: str) -> None:
        while isinstance(self.state, AwaitingSettlement) and not self._closed:
            await asyncio.sleep(self.poll_interval)

            try:
                settled = await self.connector.poll_settlement(invoice_id)
            except Exception as e:
                logger.warning(f"Settlement poll failed, retrying in {self.poll_interval}s: {e}")
                continue

            if settled:
                self._settle(SettlementSource.POLL)
                return

    def _settle(self, source: SettlementSource) -> bool:
        """
        Move to Settled if still awaiting settlement

        Runs without awaiting, so a push and a poll result can never both
        pass the state check.

        Returns:
            True if this call settled the session, False if it was a no-op
        """
        state = self.state
        if self._closed or not isinstance(state, AwaitingSettlement):
            return False

        invoice = state.invoice.mark_settled()
        self.state = Settled(invoice, source)

        self._cancel_poll()
        self.connector.unsubscribe(invoice.id)
        self.basket.clear_basket()

        logger.info(f"Payment received via {source.value} for invoice {invoice.id[:24]}...")
        self._finished.set()
        if self.on_settled is not None:
            try:
                self.on_settled(invoice)
            except Exception:
                logger.exception(f"Settlement listener failed for invoice {invoice.id[:24]}...")
        return True

    def _fail(self, error: Exception) -> None:
        self.state = Failed(str(error))
        self._finished.set()

        # Nobody is watching a closed session any more
        if self._closed:
            logger.info(f"Issuance failed after the session was closed: {error}")
            return

        logger.error(f"Checkout failed: {error}")
        if self.on_failed is not None:
            self.on_failed(error)

    def _cancel_poll(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # ========================================================================
    # Teardown
    # ========================================================================

    def close(self) -> None:
        """
        Stop watching the invoice

        After close() a late push or poll result changes nothing: the basket
        is left alone and no notification is sent.
        """
        if self._closed:
            return
        self._closed = True

        self._cancel_poll()
        if self.invoice is not None:
            self.connector.unsubscribe(self.invoice.id)
        self._finished.set()
        logger.debug(f"Checkout session closed in state {self.status.value}")

    async def aclose(self) -> None:
        task = self._poll_task
        self.close()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def __aenter__(self) -> "CheckoutSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def wait_settled(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the session settles, fails or is closed

        Returns:
            True if the session is Settled, False otherwise (including timeout)
        """
        try:
            await asyncio.wait_for(self._finished.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return isinstance(self.state, Settled)


class CheckoutService:
    """
    Owns the customer's current checkout session

    Starting a new checkout or leaving checkout tears down the previous
    session first, so at most one session watches an invoice at a time.
    """

    def __init__(
        self,
        basket: BasketRepository,
        connector: LightningConnector,
        on_settled: Optional[Callable[[Invoice], None]] = None,
        on_failed: Optional[Callable[[Exception], None]] = None,
        poll_interval: Optional[float] = None,
    ):
        self.basket = basket
        self.connector = connector
        self.on_settled = on_settled
        self.on_failed = on_failed
        self.poll_interval = poll_interval
        self.session: Optional[CheckoutSession] = None

    async def start_checkout(self) -> CheckoutSession:
        """
        Tear down any current session and start a new one

        Returns:
            The started session

        Raises:
            EmptyBasket, InvalidAmount, GatewayUnavailable: As CheckoutSession.start()
        """
        await self.end_session()

        self.session = CheckoutSession(
            self.basket,
            self.connector,
            on_settled=self.on_settled,
            on_failed=self.on_failed,
            poll_interval=self.poll_interval,
        )
        await self.session.start()
        return self.session

    async def end_session(self) -> None:
        """Tear down the current session, if any"""
        session, self.session = self.session, None
        if session is not None:
            await session.aclose()


# Singleton instance bound to the shared connector and basket
_checkout_service: Optional[CheckoutService] = None


def get_checkout_service() -> CheckoutService:
    """
    Get the process-wide checkout service

    Uses the same connector the settlement webhook resolves against, so a
    push received by the API reaches the session started here.
    """
    global _checkout_service
    if _checkout_service is None:
        _checkout_service = CheckoutService(get_basket_repository(), get_lightning_connector())
    return _checkout_service
