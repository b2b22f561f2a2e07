"""
Stripe checkout for the Premium subscription. Controlled by FF_USE_STRIPE flag.

One monthly subscription, priced inline from the billing policy:
BRL for Brazil, USD everywhere else. Pix is only offered in Brazil.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from ..core.config import get_settings
from ..core.errors import CheckoutError
from ..core.flags import get_flags
from ..orchestrator.policy import BillingPolicy

logger = logging.getLogger(__name__)

PRODUCT_DESCRIPTION = "More daily looks + full coaching + personal shopper"
STRIPE_LOCALES = {"en", "pt", "es", "ja"}


@dataclass
class CheckoutSession:
    redirect_url: str
    session_id: str = ""


def _stripe():
    import stripe

    settings = get_settings()
    if not settings.stripe_secret_key:
        raise CheckoutError("STRIPE_SECRET_KEY not set on server")
    stripe.api_key = settings.stripe_secret_key
    return stripe


def build_session_params(
    method: str,
    country: str,
    lang: str,
    reason: str,
    billing: BillingPolicy,
    origin: str,
    device_id: Optional[str] = None,
) -> dict:
    is_br = country.upper() == "BR"
    if method == "pix" and not is_br:
        raise CheckoutError("Pix is only available in Brazil")
    if method not in ("card", "pix"):
        raise CheckoutError(f"Unsupported payment method: {method}")

    price = billing.price_monthly_brl if is_br else billing.price_monthly_usd
    origin = origin.rstrip("/")
    locale = (lang or "en")[:2]

    params = {
        "mode": "subscription",
        "payment_method_types": [method],
        "line_items": [
            {
                "quantity": 1,
                "price_data": {
                    "currency": "brl" if is_br else "usd",
                    "unit_amount": round(price * 100),
                    "recurring": {"interval": "month"},
                    "product_data": {
                        "name": billing.product_name,
                        "description": PRODUCT_DESCRIPTION,
                    },
                },
            }
        ],
        "allow_promotion_codes": True,
        "success_url": (
            f"{origin}/?premium=1&src=stripe&reason={quote(reason or '')}"
            "&session_id={CHECKOUT_SESSION_ID}"
        ),
        "cancel_url": f"{origin}/?cancel=1",
        "locale": locale if locale in STRIPE_LOCALES else "auto",
        "metadata": {"country": country, "reason": reason or "", "lang": lang or ""},
    }
    if device_id:
        # Checked by confirm_checkout
        params["client_reference_id"] = device_id
        params["metadata"]["device_id"] = device_id
    return params


async def create_checkout(
    method: str,
    *,
    country: str,
    lang: str,
    reason: str,
    billing: Optional[BillingPolicy] = None,
    device_id: Optional[str] = None,
) -> CheckoutSession:
    """Create a Stripe Checkout session for the Premium subscription."""
    if not get_flags().use_stripe:
        raise CheckoutError("Checkout is not available")
    billing = billing or BillingPolicy()
    if not billing.enabled:
        raise CheckoutError("Billing disabled")

    params = build_session_params(
        method, country, lang, reason, billing, get_settings().public_url, device_id,
    )
    stripe = _stripe()
    try:
        session = await asyncio.to_thread(stripe.checkout.Session.create, **params)
    except stripe.error.StripeError as e:
        logger.error("Stripe checkout failed (method=%s, country=%s): %s", method, country, e)
        raise CheckoutError(getattr(e, "user_message", None) or "Checkout failed")

    logger.info("Stripe session %s created (method=%s, reason=%s)", session.id, method, reason)
    return CheckoutSession(redirect_url=session.url, session_id=session.id)


async def confirm_checkout(session_id: str, device_id: str) -> bool:
    """True when the device's own Stripe session finished with a paid or trialing subscription."""
    if not get_flags().use_stripe:
        raise CheckoutError("Checkout is not available")
    stripe = _stripe()
    try:
        session = await asyncio.to_thread(stripe.checkout.Session.retrieve, session_id)
    except stripe.error.StripeError as e:
        logger.warning("Could not retrieve Stripe session %s: %s", session_id, e)
        raise CheckoutError("Could not verify checkout")

    owner = session.get("client_reference_id")
    if not owner or owner != device_id:
        logger.warning("Stripe session %s belongs to %s, not %s", session_id, owner, device_id)
        raise CheckoutError("This checkout was started on another device")

    paid = session.get("status") == "complete" and session.get("payment_status") in ("paid", "no_payment_required")
    logger.info("Stripe session %s confirmed=%s (device=%s)", session_id, paid, device_id)
    return paid
