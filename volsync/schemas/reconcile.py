"""Reconciliation request / result schemas."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ReconcileRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    account_id: Optional[str] = Field(default=None, alias="accountId")
    start_dt: Optional[str] = Field(default=None, alias="startDt")
    end_dt: Optional[str] = Field(default=None, alias="endDt")
    include_trades: bool = Field(default=False, alias="includeTrades")

    @field_validator("user_id", "account_id", "start_dt", "end_dt")
    @classmethod
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None


class AccountFieldSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Optional[str] = None
    trading_permission: Optional[str] = Field(default=None, alias="tradingPermission")
    enabled: Optional[bool] = None
    rule_id: Optional[str] = Field(default=None, alias="ruleId")


class UserReconcileResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    resolved_user_id: str = Field(alias="resolvedUserId")
    api_count: int = Field(alias="apiCount")
    projection_count: int = Field(alias="projectionCount")
    missing_in_projection: List[str] = Field(default_factory=list, alias="missingInProjection")
    missing_in_api: List[str] = Field(default_factory=list, alias="missingInApi")
    backfilled: int = 0
    linked_accounts: int = Field(default=0, alias="linkedAccounts")
    trades_backfilled: int = Field(default=0, alias="tradesBackfilled")
    trade_backfill_errors: List[str] = Field(default_factory=list, alias="tradeBackfillErrors")


class AccountReconcileResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    account_id: str = Field(alias="accountId")
    api: AccountFieldSnapshot
    projection: Optional[AccountFieldSnapshot] = None
    mismatches: List[str] = Field(default_factory=list)


class ReconcileResult(BaseModel):
    user: Optional[UserReconcileResult] = None
    account: Optional[AccountReconcileResult] = None

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if self.user is not None:
            body["user"] = self.user.model_dump(by_alias=True)
        if self.account is not None:
            body["account"] = self.account.model_dump(by_alias=True)
        return body


class ReconcileResponse(BaseModel):
    ok: bool = True
    result: Dict[str, Any]
