"""Request schemas for Graph change and lifecycle notifications."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

LIST_ITEM_ODATA_TYPE = "#Microsoft.Graph.ListItem"


class ResourceData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    odata_type: Optional[str] = Field(default=None, alias="@odata.type")
    odata_id: Optional[str] = Field(default=None, alias="@odata.id")
    id: Optional[str] = None


class ChangeNotification(BaseModel):
    """One element of a change notification batch."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    subscription_id: Optional[str] = Field(default=None, alias="subscriptionId")
    change_type: str = Field(default="updated", alias="changeType")
    resource: str = Field(min_length=1)
    resource_data: Optional[ResourceData] = Field(default=None, alias="resourceData")
    client_state: Optional[str] = Field(default=None, alias="clientState")
    tenant_id: Optional[str] = Field(default=None, alias="tenantId")


class ChangeNotificationBatch(BaseModel):
    value: list[ChangeNotification] = Field(min_length=1)


class LifecycleNotification(BaseModel):
    """One element of a lifecycle notification batch."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    subscription_id: str = Field(min_length=1, alias="subscriptionId")
    lifecycle_event: Optional[str] = Field(default=None, alias="lifecycleEvent")
    resource: Optional[str] = None


class LifecycleNotificationBatch(BaseModel):
    value: list[LifecycleNotification] = Field(min_length=1)
