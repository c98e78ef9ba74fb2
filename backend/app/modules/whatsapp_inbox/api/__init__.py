"""
WhatsApp Inbox Module - API Router
Combines all routes from this module for easy registration in main.py
"""
from fastapi import APIRouter
from app.modules.whatsapp_inbox.api import webhook_endpoints, message_endpoints, contact_endpoints

# Create module router
router = APIRouter()

# Include sub-routers with their prefixes
router.include_router(
    webhook_endpoints.router,
    prefix="/webhook",
    tags=["WhatsApp Webhook"]
)

router.include_router(
    message_endpoints.router,
    prefix="/messages",
    tags=["Messages"]
)

router.include_router(
    contact_endpoints.router,
    prefix="/contacts",
    tags=["Contacts"]
)
