"""
Lightning Payment Connector
Issues BOLT11 invoices and reports their settlement

The connector is the only place the checkout talks to a Lightning wallet.
It keeps the invoices it issued, delivers settlement pushes to one
listener per invoice, and answers point-in-time status polls.

BACKENDS:
- mock: stand-in wallet that needs Breez credentials, mints a fake BOLT11
  string and settles it on its own after a delay
- lnbits: LNbits wallet API
  - Create: POST /api/v1/payments  {"out": false, "amount": sats, "memo": ...}
  - Status: GET /api/v1/payments/{payment_hash}  -> {"paid": bool}
  - Auth: X-Api-Key header (invoice key)
  - Push: LNbits POSTs the paid payment to the webhook URL given on create
"""
import asyncio
import logging
import uuid
from typing import Callable, Dict, Optional

import httpx

from app.core.config import settings
from app.domain.invoice import Invoice
from app.domain.errors import GatewayUnavailable, InvalidAmount

logger = logging.getLogger(__name__)

SettlementListener = Callable[[bool], None]


class LightningBackend:
    """Wallet backend used by LightningConnector"""

    connector: Optional["LightningConnector"] = None

    def bind(self, connector: "LightningConnector") -> None:
        """Attach the connector that receives this backend's settlement pushes"""
        self.connector = connector

    async def create_invoice(self, amount_sats: int, memo: str) -> str:
        """Create an invoice and return its BOLT11 payment request"""
        raise NotImplementedError

    async def check_invoice(self, bolt11: str) -> bool:
        raise NotImplementedError

    def resolve_webhook(self, payload: dict) -> Optional[str]:
        """Map a webhook body to the BOLT11 string it refers to"""
        raise NotImplementedError

    async def aclose(self) -> None:
        pass


class LightningConnector:
    """
    Connector for Lightning invoice issuance and settlement

    Handles:
    - Invoice issuance through the configured backend
    - One-shot settlement listeners (push path)
    - Status checks (poll path)
    """

    def __init__(self, backend: LightningBackend):
        self.backend = backend
        self._invoices: Dict[str, Invoice] = {}
        self._listeners: Dict[str, SettlementListener] = {}
        backend.bind(self)

    async def issue_invoice(self, amount_sats: int, memo: str = "") -> Invoice:
        """
        Issue a new invoice

        Args:
            amount_sats: Amount to request, in satoshis
            memo: Description shown in the payer's wallet

        Returns:
            Unsettled Invoice

        Raises:
            InvalidAmount: If amount_sats is not positive
            GatewayUnavailable: If the backend is unconfigured or unreachable
        """
        if amount_sats <= 0:
            raise InvalidAmount(amount_sats)

        bolt11 = await self.backend.create_invoice(amount_sats, memo)
        invoice = Invoice(bolt11=bolt11, amount=amount_sats, memo=memo)
        self._invoices[invoice.id] = invoice

        logger.info(f"Issued invoice for {amount_sats} sats: {bolt11[:24]}...")
        return invoice

    def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        return self._invoices.get(invoice_id)

    def subscribe_settlement(self, invoice_id: str, on_settled: SettlementListener) -> None:
        """
        Register the push listener for an invoice

        The listener fires at most once. Registering again for the same
        invoice replaces the previous listener.
        """
        self._listeners[invoice_id] = on_settled

    def unsubscribe(self, invoice_id: str) -> None:
        self._listeners.pop(invoice_id, None)

    async def poll_settlement(self, invoice_id: str) -> bool:
        """
        Check whether an invoice is settled

        Args:
            invoice_id: BOLT11 string of an issued invoice

        Returns:
            True once the invoice is settled, False otherwise (including
            for invoices this connector never issued)

        Raises:
            GatewayUnavailable: If the backend could not be asked
        """
        invoice = self._invoices.get(invoice_id)
        if invoice is None:
            return False
        if invoice.settled:
            return True

        if await self.backend.check_invoice(invoice_id):
            self._mark_settled(invoice_id)
        return self._invoices[invoice_id].settled

    def notify_settled(self, invoice_id: str) -> bool:
        """
        Record a settlement push from the backend

        Marks the invoice settled and fires its listener, if any. The
        listener is removed before it runs, so a repeated push is a no-op.

        Returns:
            False if the invoice is unknown, True otherwise
        """
        if invoice_id not in self._invoices:
            logger.warning(f"Settlement push for unknown invoice {invoice_id[:24]}...")
            return False

        self._mark_settled(invoice_id)

        listener = self._listeners.pop(invoice_id, None)
        if listener is not None:
            listener(True)
        return True

    def handle_webhook(self, payload: dict) -> bool:
        """
        Resolve a backend webhook body and record the settlement

        Returns:
            True if the payload referred to a known invoice
        """
        bolt11 = self.backend.resolve_webhook(payload)
        if not bolt11:
            return False
        return self.notify_settled(bolt11)

    def _mark_settled(self, invoice_id: str) -> None:
        invoice = self._invoices[invoice_id]
        if not invoice.settled:
            self._invoices[invoice_id] = invoice.mark_settled()
            logger.info(f"Payment received for invoice {invoice_id[:24]}...")

    async def aclose(self) -> None:
        await self.backend.aclose()


# ============================================================================
# Backends
# ============================================================================

class MockLightningBackend(LightningBackend):
    """
    Stand-in wallet for development

    Requires Breez credentials like the real SDK would, but mints a fake
    BOLT11 string and marks it paid after settlement_delay seconds.
    A settlement_delay of None disables automatic settlement.
    """

    BOLT11_BODY = (
        "p3xaddz5pp5hhkl5ygdnfvug9yg05l05c9xkd997gzp0q4kg4y20p7vsqj0r6sdqqcqzpg"
        "xqyz5vqsp5l2c4uzxjyks0a6vrnss9t44wj82uhtn9scnkcwxf0x420ak800dq9qyyssq"
    )

    def __init__(
        self,
        api_key: str = "",
        mnemonic: str = "",
        settlement_delay: Optional[float] = 10.0,
    ):
        self.api_key = api_key
        self.mnemonic = mnemonic
        self.settlement_delay = settlement_delay
        self._paid: set = set()
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    async def create_invoice(self, amount_sats: int, memo: str) -> str:
        if not self.api_key or not self.mnemonic:
            logger.error("Mock wallet is missing BREEZ_API_KEY or BREEZ_MNEMONIC")
            raise GatewayUnavailable("Breez API key and mnemonic must be set")

        salt = uuid.uuid4().hex[:13]
        bolt11 = f"lnbc{amount_sats}n1{self.BOLT11_BODY}{salt}"

        if self.settlement_delay is not None:
            loop = asyncio.get_running_loop()
            self._timers[bolt11] = loop.call_later(self.settlement_delay, self.settle, bolt11)

        return bolt11

    def settle(self, bolt11: str) -> None:
        """Mark an invoice paid and push the settlement to the connector"""
        timer = self._timers.pop(bolt11, None)
        if timer is not None:
            timer.cancel()
        self._paid.add(bolt11)
        if self.connector is not None:
            self.connector.notify_settled(bolt11)

    async def check_invoice(self, bolt11: str) -> bool:
        return bolt11 in self._paid

    def resolve_webhook(self, payload: dict) -> Optional[str]:
        return payload.get("bolt11")

    async def aclose(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()


class LNbitsBackend(LightningBackend):
    """
    LNbits wallet backend

    A fresh httpx.AsyncClient is opened per request. The transport argument
    lets callers substitute the network layer.
    """

    PAYMENTS_PATH = "/api/v1/payments"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        webhook_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.transport = transport
        self._payment_hashes: Dict[str, str] = {}   # bolt11 -> payment_hash
        self._bolt11_by_hash: Dict[str, str] = {}

    @property
    def _headers(self) -> Dict[str, str]:
        return {"X-Api-Key": self.api_key, "Content-Type": "application/json"}

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        if not self.base_url or not self.api_key:
            raise GatewayUnavailable("LNbits URL and API key must be set")

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
                return response.json()

        except httpx.HTTPStatusError as e:
            logger.error(f"LNbits HTTP error {e.response.status_code} on {method} {path}")
            raise GatewayUnavailable(
                f"LNbits returned {e.response.status_code} for {method} {path}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"LNbits request error on {method} {path}: {e}")
            raise GatewayUnavailable(f"LNbits request failed: {e}") from e
        except ValueError as e:
            raise GatewayUnavailable(f"LNbits returned invalid JSON for {method} {path}") from e

    async def create_invoice(self, amount_sats: int, memo: str) -> str:
        body = {"out": False, "amount": amount_sats, "memo": memo}
        if self.webhook_url:
            body["webhook"] = self.webhook_url

        data = await self._request("POST", self.PAYMENTS_PATH, json=body)

        bolt11 = data.get("payment_request") or data.get("bolt11")
        payment_hash = data.get("payment_hash")
        if not bolt11 or not payment_hash:
            raise GatewayUnavailable("LNbits response is missing payment_request or payment_hash")

        self._payment_hashes[bolt11] = payment_hash
        self._bolt11_by_hash[payment_hash] = bolt11
        return bolt11

    async def check_invoice(self, bolt11: str) -> bool:
        payment_hash = self._payment_hashes.get(bolt11)
        if payment_hash is None:
            return False

        data = await self._request("GET", f"{self.PAYMENTS_PATH}/{payment_hash}")
        return bool(data.get("paid", False))

    def resolve_webhook(self, payload: dict) -> Optional[str]:
        payment_hash = payload.get("payment_hash")
        if payment_hash and payment_hash in self._bolt11_by_hash:
            return self._bolt11_by_hash[payment_hash]

        bolt11 = payload.get("bolt11") or payload.get("payment_request")
        if bolt11 in self._payment_hashes:
            return bolt11
        return None


# ============================================================================
# Factory
# ============================================================================

def build_lightning_connector(settings) -> LightningConnector:
    """Create a connector for the backend named by settings.LIGHTNING_BACKEND"""
    backend_name = settings.LIGHTNING_BACKEND.strip().lower()

    if backend_name == "mock":
        backend = MockLightningBackend(
            api_key=settings.BREEZ_API_KEY,
            mnemonic=settings.BREEZ_MNEMONIC,
            settlement_delay=settings.MOCK_SETTLEMENT_DELAY_SECONDS,
        )
    elif backend_name == "lnbits":
        backend = LNbitsBackend(
            base_url=settings.LNBITS_URL,
            api_key=settings.LNBITS_API_KEY,
            webhook_url=settings.LNBITS_WEBHOOK_URL or None,
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
        )
    else:
        raise ValueError(f"Unknown LIGHTNING_BACKEND: {settings.LIGHTNING_BACKEND}")

    return LightningConnector(backend)


_connector: Optional[LightningConnector] = None


def get_lightning_connector() -> LightningConnector:
    """Get the process-wide connector built from settings"""
    global _connector
    if _connector is None:
        _connector = build_lightning_connector(settings)
    return _connector
