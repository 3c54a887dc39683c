"""WhatsApp sync constants: storage keys, defaults and API paths."""

from __future__ import annotations

# Store keys (one JSON document each)
CONVERSATIONS_KEY = "whatsapp_conversations"
MESSAGES_KEY = "whatsapp_messages"
CONFIG_KEY = "whatsapp_config"
LAST_SYNC_KEY = "whatsapp_last_sync"
SETTINGS_KEY = "whatsapp_storage_settings"
QUEUE_KEY = "whatsapp_message_queue"

# Export names -> store keys. The outgoing queue is deliberately absent:
# clearing or importing a backup never drops pending sends.
STORAGE_KEYS = {
    "CONVERSATIONS": CONVERSATIONS_KEY,
    "MESSAGES": MESSAGES_KEY,
    "CONFIG": CONFIG_KEY,
    "LAST_SYNC": LAST_SYNC_KEY,
    "SETTINGS": SETTINGS_KEY,
}

EXPORT_VERSION = "1.0"

DEFAULT_MAX_CONVERSATIONS = 50
DEFAULT_MAX_MESSAGES_PER_CONVERSATION = 100
DEFAULT_SYNC_INTERVAL = 30.0  # seconds
DEFAULT_RETENTION_DAYS = 30

# Conversations whose messages are refreshed during a full sync
FULL_SYNC_CONVERSATIONS = 10

DEFAULT_POLL_INTERVAL = 5.0  # seconds

DEFAULT_API_URL = "http://localhost:5000"

# Backend endpoints
CONVERSATIONS_PATH = "/api/whatsapp/conversations"
MESSAGES_PATH = "/api/whatsapp/conversations/{conversation_id}/messages"
MARK_READ_PATH = "/api/whatsapp/conversations/{conversation_id}/mark-read"
SEND_MESSAGE_PATH = "/api/whatsapp/send-message"
CONFIG_PATH = "/api/whatsapp/config"

# Message senders / statuses as the backend spells them
SENDER_AGENT = "agent"
SENDER_CUSTOMER = "customer"
SENDER_AI = "ai"

STATUS_SENDING = "sending"
STATUS_SENT = "sent"
STATUS_DELIVERED = "delivered"
STATUS_READ = "read"
STATUS_FAILED = "failed"

TEMP_ID_PREFIX = "temp_"
