"""
Centralized Constants for the WhatsApp Inbox Backend.
All hardcoded values should be defined here for easy maintenance.
"""

# ============================================
# PAGINATION
# ============================================
DEFAULT_PAGE_SIZE = 50        # Messages per conversation page
MAX_PAGE_SIZE = 200           # Hard cap for a single page

# ============================================
# WEBHOOK
# ============================================
WHATSAPP_WEBHOOK_OBJECT = "whatsapp_business_account"
WEBHOOK_SUBSCRIBE_MODE = "subscribe"

# ============================================
# PLACEHOLDER VALUES
# ============================================
UNSUPPORTED_MESSAGE_BODY = "Unsupported message type"
UNKNOWN_SENDER_NAME = "Unknown User"
LOCAL_SENDER_NAME = "You"
LOCAL_MESSAGE_ID_PREFIX = "local"

# ============================================
# CACHE
# ============================================
CONVERSATION_CACHE_MAX_SIZE = 100

# ============================================
# DATABASE POOL SETTINGS
# ============================================
DB_POOL_SIZE = 5
DB_MAX_OVERFLOW = 10
DB_POOL_RECYCLE = 300
