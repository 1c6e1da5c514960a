"""Publisher client for server-mode x402 payment.

The agent signs the payment and POSTs it to the publisher's ``paymentUrl``.
The publisher's backend verifies and settles through its facilitator and
answers with the gated content plus the settlement transaction hash.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass

import httpx

from paperwall.errors import (
    MalformedResponseError,
    PaymentDeclinedError,
    PaymentTransportError,
)
from paperwall.payments.signer import SignedPayment
from paperwall.payments.urls import assert_allowed_url

logger = logging.getLogger("paperwall.payments.publisher")

DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class PublisherPaymentResponse:
    tx_hash: str
    content: str
    content_type: str


def build_request_body(signed: SignedPayment) -> dict:
    return {"paymentPayload": signed.to_dict()}


def parse_response(data: object) -> PublisherPaymentResponse:
    """Classify a decoded 2xx body.

    Raises
    ------
    PaymentDeclinedError
        For ``{"success": false, "error": ...}``.
    MalformedResponseError
        For any other shape that is not a complete success.
    """
    if not isinstance(data, dict):
        raise MalformedResponseError(f"Payment URL returned a non-object body: {type(data).__name__}")

    success = data.get("success")
    if success is False:
        reason = data.get("error")
        if not isinstance(reason, str) or not reason:
            reason = "unknown"
        raise PaymentDeclinedError(reason)

    if success is not True:
        raise MalformedResponseError("Payment URL response is missing a boolean 'success' field")

    fields = {}
    for name in ("txHash", "content", "contentType"):
        value = data.get(name)
        if not isinstance(value, str):
            raise MalformedResponseError(f"Payment URL success response is missing '{name}'")
        fields[name] = value

    return PublisherPaymentResponse(
        tx_hash=fields["txHash"],
        content=fields["content"],
        content_type=fields["contentType"],
    )


async def submit_payment(
    payment_url: str,
    signed: SignedPayment,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    allow_insecure_hosts: Iterable[str] = (),
) -> PublisherPaymentResponse:
    """POST *signed* to *payment_url* and interpret the answer.

    Nothing is retried here; retry policy belongs to the caller.

    Raises
    ------
    UnsafeUrlError
        If the URL fails the outbound policy (checked before any I/O).
    PaymentTransportError
        On connection failure or a non-2xx status.
    PaymentDeclinedError
        When the publisher reports ``success: false``.
    MalformedResponseError
        When the body is not JSON or not a recognised shape.
    """
    assert_allowed_url(payment_url, "Payment URL", allow_insecure_hosts)

    body = build_request_body(signed)
    try:
        if client is None:
            async with httpx.AsyncClient() as own_client:
                resp = await own_client.post(payment_url, json=body, timeout=timeout)
        else:
            resp = await client.post(payment_url, json=body, timeout=timeout)
    except httpx.HTTPError as exc:
        logger.error(f"Payment URL request failed: {exc}")
        raise PaymentTransportError(f"Payment URL request failed: {exc}") from exc

    if not resp.is_success:
        raise PaymentTransportError(
            f"Payment URL HTTP error: {resp.status_code}", status_code=resp.status_code
        )

    try:
        data = resp.json()
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as exc:
        raise MalformedResponseError(f"Payment URL returned invalid JSON: {exc}") from exc

    result = parse_response(data)
    logger.info(f"Payment accepted by {payment_url}: tx={result.tx_hash}")
    return result
