"""
MercadoPago implementation of payment provider.
"""

from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from common.core.config import settings
from common.core.exceptions import PaymentProviderError
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.models.domain.auto_payment import ChargeResult
from packages.billing.models.domain.enums import PaymentProvider
from packages.billing.providers.payment.interface import PaymentProviderInterface

logger = get_logger(__name__)

# MercadoPago payment statuses
APPROVED = "approved"
PENDING_STATUSES = ("pending", "in_process", "authorized")


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("message") or response.text
    except ValueError:
        return response.text or f"HTTP {response.status_code}"


class MercadoPagoPaymentProvider(PaymentProviderInterface):
    """Charges saved cards through the MercadoPago /v1/payments REST API."""

    provider = PaymentProvider.MERCADOPAGO

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = settings.mercadopago_api_base_url
        self.access_token = settings.mercadopago_access_token
        self.timeout = settings.payment_provider_timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Content-Type": "application/json",
            },
        )

    @trace_span
    async def charge(
        self,
        payment_method_ref: str,
        amount: Decimal,
        currency: str,
        metadata: Dict[str, Any],
        customer_ref: Optional[str] = None,
    ) -> ChargeResult:
        body = {
            "transaction_amount": float(amount),
            "token": payment_method_ref,
            "installments": 1,
            "description": metadata.get("description", "Subscription invoice"),
            "external_reference": str(metadata.get("invoice_id", "")),
            "metadata": {key: str(value) for key, value in metadata.items()},
        }
        if customer_ref:
            body["payer"] = {"type": "customer", "id": customer_ref}

        headers = {}
        if metadata.get("idempotency_key"):
            headers["X-Idempotency-Key"] = str(metadata["idempotency_key"])

        try:
            async with self._client() as client:
                response = await client.post("/v1/payments", json=body, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if 400 <= status_code < 500:
                # Bad token or rejected request: a failed charge, not an outage
                message = _error_message(e.response)
                logger.warning(
                    f"MercadoPago rejected payment request: {message}",
                    extra={"status_code": status_code, **metadata},
                )
                return ChargeResult.failed(reason=message)
            logger.error(
                f"MercadoPago call failed with status {status_code}", extra=metadata
            )
            raise PaymentProviderError(
                self.provider.value, f"HTTP {status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Error reaching MercadoPago: {str(e)}", extra=metadata)
            raise PaymentProviderError(self.provider.value, str(e)) from e

        payment_id = str(data.get("id")) if data.get("id") is not None else None
        status = data.get("status")

        if status == APPROVED:
            logger.info(
                "MercadoPago charge approved",
                extra={"provider_payment_id": payment_id, **metadata},
            )
            return ChargeResult.succeeded(provider_payment_id=payment_id)

        if status in PENDING_STATUSES:
            three_ds = data.get("three_ds_info") or {}
            return ChargeResult.requires_action(
                action_url=three_ds.get("external_resource_url"),
                provider_payment_id=payment_id,
            )

        reason = data.get("status_detail") or status or "unknown"
        logger.warning(
            f"MercadoPago charge {status}: {reason}",
            extra={"provider_payment_id": payment_id, **metadata},
        )
        return ChargeResult.failed(reason=reason, provider_payment_id=payment_id)

    @trace_span
    async def health_check(self) -> bool:
        try:
            async with self._client() as client:
                response = await client.get("/v1/payment_methods")
                return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(f"MercadoPago health check failed: {str(e)}")
            return False
