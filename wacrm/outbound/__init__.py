# wacrm/outbound/__init__.py
from .gateway import (
    NoProviderConfigured,
    OutboundDeliveryError,
    OutboundSendReceipt,
    OutboundSendRequest,
    SendGateway,
    SendStatus,
)
from .dry_run import DryRunSendGateway
from .factory import build_send_gateway, select_provider
