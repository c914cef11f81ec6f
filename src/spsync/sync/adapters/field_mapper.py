"""Field mapper adapter for transforming Graph payloads into domain records.

Graph responses are plain dictionaries; this module is the only place that
knows their shape (``eTag``, ``fields``, ``@odata.*`` annotations,
``expirationDateTime`` and so on).
"""

import itertools
from datetime import datetime, timezone
from typing import Any

from ..domain.entities import ItemRecord, ListRecord, ResourceRef, SubscriptionRecord

# Annotations Graph adds to the expanded fields object
_FIELD_ANNOTATIONS = ("@odata.etag", "@odata.context")


class ListItemMapper:
    """Maps list and list-item payloads to ListRecord / ItemRecord.

    A delta response marks a removed item with a ``deleted`` facet and no
    ``eTag``; it is mapped to an empty revision tag, which diff_delta reads
    as a deletion.
    """

    def map_list(self, raw: dict[str, Any], ref: ResourceRef) -> ListRecord:
        """Transform a ``GET /sites/{site}/lists/{list}`` response.

        The record is keyed by the configured list id, which is also the key
        of the continuation token; Graph may echo a different spelling (a GUID
        for a list addressed by title, or another letter case).
        """
        return ListRecord(
            id=ref.list_id,
            site_id=ref.site_id,
            revision_tag=raw.get("eTag") or "",
            name=raw.get("name"),
            display_name=raw.get("displayName"),
        )

    def map_item(self, raw: dict[str, Any], ref: ResourceRef) -> ItemRecord:
        """Transform one element of an items (delta) response."""
        fields = {
            key: value
            for key, value in (raw.get("fields") or {}).items()
            if key not in _FIELD_ANNOTATIONS
        }
        revision = "" if "deleted" in raw else (raw.get("eTag") or "")
        return ItemRecord(
            id=str(raw["id"]),
            list_id=ref.list_id,
            site_id=ref.site_id,
            revision_tag=revision,
            fields=fields,
        )

    def map_items(self, raw_items: list[dict[str, Any]], ref: ResourceRef) -> list[ItemRecord]:
        return [self.map_item(raw, ref) for raw in raw_items]


class SubscriptionMapper:
    """Maps Graph subscription payloads to SubscriptionRecord."""

    def map_to_entity(self, raw: dict[str, Any]) -> SubscriptionRecord:
        return SubscriptionRecord(
            id=raw["id"],
            resource=raw.get("resource", ""),
            notification_url=raw.get("notificationUrl", ""),
            lifecycle_url=raw.get("lifecycleNotificationUrl"),
            expiry=self._parse_timestamp(raw.get("expirationDateTime")),
            change_type=raw.get("changeType", "updated"),
        )

    def map_create_body(
        self,
        resource: str,
        notification_url: str,
        lifecycle_url: str,
        expiry: datetime,
        change_type: str = "updated",
    ) -> dict[str, Any]:
        """Build the JSON body of ``POST /subscriptions``."""
        return {
            "changeType": change_type,
            "notificationUrl": notification_url,
            "lifecycleNotificationUrl": lifecycle_url,
            "resource": resource,
            "expirationDateTime": self.format_timestamp(expiry),
            "latestSupportedTlsVersion": "v1_2",
        }

    @staticmethod
    def format_timestamp(value: datetime) -> str:
        """Format a datetime the way Graph expects (UTC, ``Z`` suffix)."""
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

    @staticmethod
    def _parse_timestamp(iso_string: str | None) -> datetime | None:
        """Parse ISO 8601 timestamp string to datetime.

        Args:
            iso_string: ISO 8601 formatted timestamp string (may end with 'Z')

        Returns:
            datetime object or None if input is None/empty
        """
        if not iso_string:
            return None
        # Graph returns up to 7 fractional digits; fromisoformat takes 6
        value = iso_string.replace("Z", "+00:00")
        if "." in value:
            head, _, tail = value.partition(".")
            digits = "".join(itertools.takewhile(str.isdigit, tail))
            offset = tail[len(digits):]
            value = f"{head}.{digits[:6].ljust(6, '0')}{offset}"
        return datetime.fromisoformat(value)
