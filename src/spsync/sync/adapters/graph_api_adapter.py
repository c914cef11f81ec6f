"""Graph API adapters for SharePoint lists and change subscriptions.

These adapters implement IListSourceAPI and ISubscriptionAPI on top of
GraphClient, translating raw payloads through the field mappers.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from ..domain.entities import ItemsPage, ListRecord, ResourceRef, SubscriptionRecord
from ..domain.ports import IListSourceAPI, ISubscriptionAPI
from .field_mapper import ListItemMapper, SubscriptionMapper

if TYPE_CHECKING:
    from ...api.client import GraphClient


class GraphListAPI(IListSourceAPI):
    """Microsoft Graph adapter for list metadata and item delta queries.

    The first page of a full listing is requested from the items delta
    endpoint with the configured fields expanded; every further page (and a
    stored delta token) is an absolute link handed back by Graph.
    """

    def __init__(
        self,
        client: "GraphClient",
        mapper: ListItemMapper | None = None,
        page_size: int | None = None,
    ):
        """Initialize the API adapter.

        Args:
            client: Configured GraphClient instance
            mapper: Payload mapper (a default one is created when omitted)
            page_size: Optional ``$top`` for the first delta request
        """
        self.client = client
        self.mapper = mapper or ListItemMapper()
        self.page_size = page_size

    @staticmethod
    def list_endpoint(ref: ResourceRef) -> str:
        return f"/sites/{ref.site_id}/lists/{ref.list_id}"

    async def get_list_metadata(self, ref: ResourceRef) -> ListRecord:
        raw = await self.client.get(self.list_endpoint(ref))
        return self.mapper.map_list(raw, ref)

    async def fetch_items_page(
        self,
        ref: ResourceRef,
        link: str | None,
        field_selector: list[str],
    ) -> ItemsPage:
        if link:
            data = await self.client.get(link)
        else:
            params = {"$expand": f"fields($select={','.join(field_selector)})"}
            if self.page_size:
                params["$top"] = str(self.page_size)
            data = await self.client.get(f"{self.list_endpoint(ref)}/items/delta", params=params)

        return ItemsPage(
            items=self.mapper.map_items(data.get("value", []), ref),
            next_link=data.get("@odata.nextLink"),
            delta_link=data.get("@odata.deltaLink"),
        )


class GraphSubscriptionAPI(ISubscriptionAPI):
    """Microsoft Graph adapter for change-notification subscriptions."""

    ENDPOINT = "/subscriptions"

    def __init__(self, client: "GraphClient", mapper: SubscriptionMapper | None = None):
        self.client = client
        self.mapper = mapper or SubscriptionMapper()

    async def list_subscriptions(self) -> list[SubscriptionRecord]:
        raw = await self.client.fetch_all(self.ENDPOINT)
        return [self.mapper.map_to_entity(r) for r in raw]

    async def create_subscription(
        self,
        resource: str,
        notification_url: str,
        lifecycle_url: str,
        expiry: datetime,
    ) -> SubscriptionRecord:
        body = self.mapper.map_create_body(resource, notification_url, lifecycle_url, expiry)
        raw = await self.client.post(self.ENDPOINT, json_body=body)
        return self.mapper.map_to_entity(raw)

    async def renew_subscription(
        self,
        subscription_id: str,
        new_expiry: datetime,
    ) -> SubscriptionRecord:
        raw = await self.client.patch(
            f"{self.ENDPOINT}/{subscription_id}",
            json_body={"expirationDateTime": self.mapper.format_timestamp(new_expiry)},
        )
        return self.mapper.map_to_entity(raw)

    async def delete_subscription(self, subscription_id: str) -> None:
        await self.client.delete(f"{self.ENDPOINT}/{subscription_id}")
