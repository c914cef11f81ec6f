"""Infrastructure modules shared by the sync and webhook layers.

Classes:
    GraphClient: Microsoft Graph HTTP client with retry and OData pagination
    TokenManager: OAuth2 client-credentials token management (Azure AD)

Database:
    database_transaction / database_connection: pool helpers
    create_pool / close_pool / check_database_health

Exceptions:
    SyncServiceError and its subclasses (see exceptions.py)
"""
from .auth import TokenManager
from .client import GraphClient
from .database import (
    check_database_health,
    close_pool,
    create_pool,
    database_connection,
    database_transaction,
)
from .exceptions import (
    ConfigurationError,
    ConnectionPoolError,
    ErrorCollector,
    MalformedNotificationError,
    PartialSyncError,
    RateLimitError,
    ServerError,
    SourceAuthError,
    SourceError,
    SourceFetchError,
    StoreError,
    StoreWriteError,
    SubscriptionConflictError,
    SyncError,
    SyncServiceError,
    TokenInvalidError,
    UnknownResourceError,
)

__all__ = [
    # Client
    "GraphClient",
    "TokenManager",
    # Database
    "check_database_health",
    "close_pool",
    "create_pool",
    "database_connection",
    "database_transaction",
    # Exceptions
    "ConfigurationError",
    "ConnectionPoolError",
    "ErrorCollector",
    "MalformedNotificationError",
    "PartialSyncError",
    "RateLimitError",
    "ServerError",
    "SourceAuthError",
    "SourceError",
    "SourceFetchError",
    "StoreError",
    "StoreWriteError",
    "SubscriptionConflictError",
    "SyncError",
    "SyncServiceError",
    "TokenInvalidError",
    "UnknownResourceError",
]
