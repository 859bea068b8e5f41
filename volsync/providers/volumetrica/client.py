"""
Volumetrica REST API client.

Thin synchronous wrapper over ``httpx.Client``. Every call carries the
``x-api-key`` header and the configured timeout. 5xx responses and transport
errors are retried with linear backoff; 4xx responses fail immediately.
"""

import json
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from volsync.config import VolumetricaApiConfig

logger = logging.getLogger(__name__)

API_PREFIX = "/api/Propsite"


class UpstreamApiError(Exception):
    """Failed upstream call; ``status`` is 0 when no response was received."""

    def __init__(self, message: str, status: int = 0, body: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.body = body

    def to_details(self) -> Dict[str, Any]:
        return {"message": self.message, "status": self.status, "body": self.body}


def _should_retry(status: int) -> bool:
    return 500 <= status < 600


def _clean_query(query: Optional[Dict[str, Any]]) -> Dict[str, str]:
    cleaned = {}
    for key, value in (query or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            cleaned[key] = "true" if value else "false"
        else:
            cleaned[key] = str(value)
    return cleaned


class VolumetricaClient:
    def __init__(
        self,
        config: VolumetricaApiConfig,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=config.base_url,
            headers={"x-api-key": config.api_key},
            timeout=config.timeout_sec,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _parse(self, response: httpx.Response) -> Any:
        if "json" in response.headers.get("content-type", ""):
            return response.json()
        text = response.text
        try:
            return json.loads(text)
        except ValueError:
            return text

    def request(
        self,
        method: str,
        path: str,
        query: Optional[Dict[str, Any]] = None,
        body: Any = None,
    ) -> Any:
        url = f"{API_PREFIX}/{path}"
        params = _clean_query(query)
        max_retries = max(self.config.max_retries, 0)

        for attempt in range(max_retries + 1):
            try:
                response = self._client.request(method, url, params=params, json=body)
            except httpx.HTTPError as e:
                if attempt < max_retries:
                    logger.warning(
                        f"Volumetrica {method} {path} transport error, retrying: {str(e)}"
                    )
                    self._sleep(self.config.backoff_sec * (attempt + 1))
                    continue
                logger.error(f"Volumetrica {method} {path} failed: {str(e)}")
                raise UpstreamApiError(f"Volumetrica request failed: {str(e)}")

            if response.is_success:
                return self._parse(response)

            if _should_retry(response.status_code) and attempt < max_retries:
                logger.warning(
                    f"Volumetrica {method} {path} returned {response.status_code}, retrying"
                )
                self._sleep(self.config.backoff_sec * (attempt + 1))
                continue

            logger.error(
                f"Volumetrica {method} {path} returned {response.status_code}: {response.text}"
            )
            raise UpstreamApiError(
                "Volumetrica request failed.",
                status=response.status_code,
                body=response.text,
            )

        raise UpstreamApiError("Volumetrica request failed without a response.")

    # Accounts

    def get_user_accounts(self, user_id: str) -> Any:
        return self.request("GET", "GetUserAccounts", {"userId": user_id})

    def get_account_info(self, account_id: str) -> Any:
        return self.request("GET", "GetAccountInfo", {"accountId": account_id})

    def get_account_report(
        self, account_id: str, start_dt: Optional[str] = None, end_dt: Optional[str] = None
    ) -> Any:
        return self.request(
            "GET",
            "GetAccountReport",
            {"accountId": account_id, "startDt": start_dt, "endDt": end_dt},
        )

    def get_enabled_account_ids(self) -> Any:
        return self.request("GET", "GetEnabledAccountsId")

    def create_trading_account(self, payload: Dict[str, Any]) -> Any:
        return self.request("POST", "CreateTradingAccount", body=payload)

    def enable_trading_account(self, account_id: str) -> Any:
        return self.request("GET", "EnableTradingAccount", {"accountId": account_id})

    def disable_trading_account(
        self, account_id: str, force_close: Optional[bool] = None, reason: Optional[str] = None
    ) -> Any:
        return self.request(
            "GET",
            "DisableTradingAccount",
            {"accountId": account_id, "forceClose": force_close, "reason": reason},
        )

    def change_trading_account_status(
        self,
        account_id: str,
        status: Any,
        force_close: Optional[bool] = None,
        reason: Optional[str] = None,
    ) -> Any:
        return self.request(
            "GET",
            "ChangeTradingAccountStatus",
            {
                "accountId": account_id,
                "status": status,
                "forceClose": force_close,
                "reason": reason,
            },
        )

    # Subscriptions

    def get_subscription_status(self, user_id: str, subscription_id: str) -> Any:
        return self.request(
            "GET",
            "GetSubscriptionStatus",
            {"userId": user_id, "subscriptionId": subscription_id},
        )

    def new_subscription(self, payload: Dict[str, Any]) -> Any:
        return self.request("POST", "NewSubscription", body=payload)

    def update_subscription(self, subscription_id: str, payload: Dict[str, Any]) -> Any:
        # upstream spells the parameter "subcriptionId"
        return self.request(
            "POST",
            "UpdateSubscription",
            {"subcriptionId": subscription_id},
            body=payload,
        )

    def activate_subscription(self, subscription_id: str) -> Any:
        return self.request("GET", "ActiveSubscription", {"subscriptionId": subscription_id})

    def deactivate_subscription(self, subscription_id: str) -> Any:
        return self.request("GET", "DeactiveSubscription", {"subscriptionId": subscription_id})

    def delete_subscription(self, subscription_id: str) -> Any:
        return self.request("GET", "DeleteSubscription", {"subscriptionId": subscription_id})

    # Users

    def new_user(self, payload: Dict[str, Any]) -> Any:
        return self.request("POST", "NewUser", body=payload)

    def update_user(self, user_id: str, payload: Dict[str, Any]) -> Any:
        return self.request("POST", "UpdateUser", {"userId": user_id}, body=payload)
