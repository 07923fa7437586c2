"""
File: wacrm/main.py

Project: SendSales WhatsApp CRM

Purpose:
Application entry point.
Responsible only for:
- FastAPI app creation
- CORS + logging setup
- Router registration
- Meta WhatsApp webhook verification (GET)

Design principles:
- No business logic in this file
- No database access
- All inbound WhatsApp processing is delegated to wacrm.webhooks
- POST /webhooks/whatsapp is defined exactly once via router inclusion
"""

import logging
from typing import Optional

from fastapi import Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from wacrm.admin.routes import router as admin_router
from wacrm.config import Settings, get_settings
from wacrm.health import router as health_router
from wacrm.outbound.routes import router as outbound_router
from wacrm.security import verify_webhook_challenge
from wacrm.webhooks import router as webhooks_router

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="SendSales WhatsApp CRM")

# -------------------------------------------------------------------
# Browser callers (dashboard) hit the same endpoints as providers
# -------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=[
        "authorization",
        "x-client-info",
        "apikey",
        "content-type",
        "x-webhook-secret",
        "x-api-key",
    ],
)

# -------------------------------------------------------------------
# Webhook routes (POST /webhooks/whatsapp)
# -------------------------------------------------------------------
app.include_router(webhooks_router)

# -------------------------------------------------------------------
# Outbound send + Meta connection test
# -------------------------------------------------------------------
app.include_router(outbound_router)

# -------------------------------------------------------------------
# Admin visibility (read-only)
# -------------------------------------------------------------------
app.include_router(admin_router)

app.include_router(health_router)


# -------------------------------------------------------------------
# Meta webhook verification (GET)
# -------------------------------------------------------------------
@app.get("/webhooks/whatsapp", response_class=PlainTextResponse)
def verify_webhook(
    mode: Optional[str] = Query(default=None, alias="hub.mode"),
    token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
    settings: Settings = Depends(get_settings),
):
    echoed = verify_webhook_challenge(mode, token, challenge, settings.verify_token)
    if echoed is None:
        return PlainTextResponse("Forbidden", status_code=403)
    return PlainTextResponse(echoed)
