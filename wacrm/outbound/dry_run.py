"""
SendSales WhatsApp CRM
Outbound delivery - DRY-RUN gateway (OUTBOUND_MODE=dry_run)

This gateway never sends anything.
It returns a receipt for the provider that WOULD have been used.
"""

from __future__ import annotations

from .gateway import OutboundSendReceipt, OutboundSendRequest, SendStatus


class DryRunSendGateway:
    def __init__(self, provider: str) -> None:
        self.provider = provider

    def send(self, req: OutboundSendRequest) -> OutboundSendReceipt:
        # No side effects. Never raises. Never calls external services.
        detail = (
            "DRY_RUN: outbound delivery simulated (not sent). "
            f"provider={self.provider} to={req.to_number} type={req.message_type}"
        )
        return OutboundSendReceipt.now(
            status=SendStatus.DRY_RUN,
            provider=self.provider,
            detail=detail,
            provider_message_id=None,
        )
