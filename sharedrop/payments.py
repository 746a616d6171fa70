"""PayPal order verification.

Only reads orders; capture happens client-side. Any failure talking to
PayPal is raised as :class:`UpstreamFailure` and aborts the checkout.
"""
import logging

import httpx

from sharedrop.core.config import settings
from sharedrop.core.errors import UpstreamFailure

logger = logging.getLogger("sharedrop.payments")

PAID_STATUSES = ("COMPLETED", "APPROVED")


async def _get_access_token(client: httpx.AsyncClient) -> str:
    if not settings.paypal_client_id or not settings.paypal_client_secret:
        raise UpstreamFailure("Missing PayPal credentials")

    resp = await client.post(
        "/v1/oauth2/token",
        data={"grant_type": "client_credentials"},
        auth=(settings.paypal_client_id, settings.paypal_client_secret),
    )
    if resp.status_code != 200:
        raise UpstreamFailure("PayPal authentication failed")
    return resp.json()["access_token"]


async def verify_order(order_id: str) -> dict:
    try:
        async with httpx.AsyncClient(base_url=settings.paypal_api_base, timeout=15.0) as client:
            token = await _get_access_token(client)
            resp = await client.get(
                f"/v2/checkout/orders/{order_id}",
                headers={"Authorization": f"Bearer {token}"},
            )
    except httpx.HTTPError as exc:
        logger.exception("PayPal request failed for order %s", order_id)
        raise UpstreamFailure("Failed to verify order") from exc

    if resp.status_code != 200:
        logger.error("PayPal returned %s for order %s", resp.status_code, order_id)
        raise UpstreamFailure("Failed to verify order")
    return resp.json()


def order_amount(order: dict) -> tuple[float, str]:
    amount = order["purchase_units"][0]["amount"]
    return float(amount["value"]), amount.get("currency_code", "EUR")
