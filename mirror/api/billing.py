"""
Billing API — paywall checkout and confirmation.

POST /v1/billing/checkout — Start Stripe checkout for the open paywall
POST /v1/billing/confirm  — Verify a finished checkout and unlock Premium
POST /v1/paywall/dismiss  — Close the paywall, stay free
"""

import logging
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..core.dependencies import DeviceContext, get_device
from ..orchestrator.sessions import get_machine, set_premium
from ..services.checkout import confirm_checkout

logger = logging.getLogger(__name__)

billing_router = APIRouter(tags=["billing"])


class CheckoutRequest(BaseModel):
    method: Literal["card", "pix"]


class CheckoutResponse(BaseModel):
    url: str
    session_id: str = ""


class ConfirmRequest(BaseModel):
    session_id: str


@billing_router.post("/billing/checkout", response_model=CheckoutResponse)
async def create_checkout(request: CheckoutRequest, device: DeviceContext = Depends(get_device)):
    machine = await get_machine(device.device_id, device.locale, device.timezone)
    session = await machine.gate.checkout(request.method)
    return CheckoutResponse(url=session.redirect_url, session_id=session.session_id)


@billing_router.post("/billing/confirm")
async def confirm(request: ConfirmRequest, device: DeviceContext = Depends(get_device)):
    """Called by the client when it lands on the checkout success URL."""
    paid = await confirm_checkout(request.session_id, device.device_id)
    machine = await get_machine(device.device_id, device.locale, device.timezone)
    if paid:
        await set_premium(machine.store, True)
        machine.apply_policy(machine.policy.with_premium(True))
        machine.gate.dismiss()
    return {"premium": machine.is_premium}


@billing_router.post("/paywall/dismiss")
async def dismiss_paywall(device: DeviceContext = Depends(get_device)):
    machine = await get_machine(device.device_id, device.locale, device.timezone)
    machine.gate.dismiss()
    return {"ok": True}
