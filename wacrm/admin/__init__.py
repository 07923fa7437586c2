"""
File: wacrm/admin/__init__.py

Project: SendSales WhatsApp CRM

Purpose:
Admin package for read-only operational visibility.

Design rules:
- Read-only endpoints only (GET)
- No business logic here
- No writes, no side effects
"""

from .routes import router as admin_router
