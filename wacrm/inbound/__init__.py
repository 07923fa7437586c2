# wacrm/inbound/__init__.py
from .parser import detect_provider, parse_payload
from .types import (
    PROVIDER_EVOLUTION,
    PROVIDER_META,
    ParsedBatch,
    ParsedIncoming,
    normalize_phone,
)
