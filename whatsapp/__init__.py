"""WhatsApp sync package.

Local-first cache for the CRM's WhatsApp conversations: bounded on-disk
storage, fetch-merge-persist sync against the backend REST API, and an
outgoing queue that is replayed when connectivity returns.

Public CLI entry lives in whatsapp.__main__.
"""

__all__ = [
    "__version__",
]

__version__ = "0.1.0"
