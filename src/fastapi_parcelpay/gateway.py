"""Stripe-backed payment intent gateway."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import stripe

from fastapi_parcelpay.exceptions import GatewayError
from fastapi_parcelpay.types import PaymentIntent

logger = logging.getLogger(__name__)


class StripePaymentIntentGateway:
    """Create PaymentIntents through the Stripe API.

    Network retries are disabled: creating an intent is not safe to
    repeat without the client knowing about it.
    """

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = 10.0,
        client: stripe.StripeClient | None = None,
    ) -> None:
        self.client = client or stripe.StripeClient(
            api_key,
            http_client=stripe.HTTPXClient(timeout=timeout),
            max_network_retries=0,
        )

    async def create_payment_intent(
        self,
        amount: int,
        *,
        currency: str,
        payment_method_types: Sequence[str],
    ) -> PaymentIntent:
        try:
            intent = await self.client.payment_intents.create_async(
                params={
                    "amount": amount,
                    "currency": currency,
                    "payment_method_types": list(payment_method_types),
                }
            )
        except stripe.StripeError as exc:
            logger.warning("Stripe rejected payment intent: %s", exc)
            raise GatewayError(exc.user_message or str(exc)) from exc
        return PaymentIntent(id=intent.id, client_secret=intent.client_secret)
