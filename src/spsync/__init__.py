"""SharePoint List Sync - mirrors SharePoint lists into PostgreSQL.

Packages:
    api/      Graph HTTP client, OAuth2 tokens, database helpers, exceptions
    sync/     Domain, reconciliation use cases and adapters
    webhook/  Inbound Graph notifications (FastAPI)
"""

__version__ = "1.0.0"
