"""Admin action request / response schemas."""

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

AccountAction = Literal["enable", "disable", "status"]
SubscriptionAction = Literal["activate", "deactivate", "delete"]


class AccountActionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: str
    status: Optional[int] = None
    force_close: bool = Field(default=False, alias="forceClose")
    reason: Optional[str] = None


class SubscriptionActionRequest(BaseModel):
    action: str


class ActionResponse(BaseModel):
    ok: bool = True
    action: str
    target_id: str = Field(serialization_alias="targetId")
    result: Any = None


class WebhookEventListResponse(BaseModel):
    ok: bool = True
    events: List[dict]


class TradeListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    account_id: str = Field(serialization_alias="accountId")
    trades: List[dict]
