import logging
from typing import Any, Optional, get_args

from sqlalchemy.orm import Session

from volsync.core.exceptions import BadRequestError, UpstreamServiceError
from volsync.core.security import AdminPrincipal
from volsync.providers.volumetrica.client import UpstreamApiError, VolumetricaClient
from volsync.schemas.admin import (
    AccountAction,
    AccountActionRequest,
    SubscriptionAction,
    SubscriptionActionRequest,
)
from volsync.services.audit_service import AuditService

logger = logging.getLogger(__name__)

ACCOUNT_ACTIONS = get_args(AccountAction)
SUBSCRIPTION_ACTIONS = get_args(SubscriptionAction)


class AdminActionService:
    """Operator lifecycle actions proxied to the upstream platform and audited."""

    def __init__(self, db: Session, client: VolumetricaClient):
        self.client = client
        self.audit_service = AuditService(db)

    def run_account_action(
        self,
        account_id: str,
        request: AccountActionRequest,
        actor: Optional[AdminPrincipal] = None,
    ) -> Any:
        action = request.action
        if action not in ACCOUNT_ACTIONS:
            raise BadRequestError("Unsupported action.", details={"action": action})
        if action == "status" and request.status is None:
            raise BadRequestError("Status code is required.")

        reason = request.reason.strip() if request.reason else None
        try:
            if action == "enable":
                result = self.client.enable_trading_account(account_id)
                metadata = None
            elif action == "disable":
                result = self.client.disable_trading_account(
                    account_id, request.force_close, reason
                )
                metadata = {"forceClose": request.force_close, "reason": reason}
            else:
                result = self.client.change_trading_account_status(
                    account_id, request.status, request.force_close, reason
                )
                metadata = {
                    "status": request.status,
                    "forceClose": request.force_close,
                    "reason": reason,
                }
        except UpstreamApiError as e:
            logger.error(f"Account action {action} failed for {account_id}: {e.message}")
            self.audit_service.record(
                "volumetrica.account.action.failed",
                actor=actor,
                target_type="account",
                target_id=account_id,
                metadata={"error": e.message, "action": action},
            )
            raise UpstreamServiceError("Account update failed.", details=e.to_details())

        self.audit_service.record(
            f"volumetrica.account.{action}",
            actor=actor,
            target_type="account",
            target_id=account_id,
            metadata=metadata,
        )
        return result

    def run_subscription_action(
        self,
        subscription_id: str,
        request: SubscriptionActionRequest,
        actor: Optional[AdminPrincipal] = None,
    ) -> Any:
        action = request.action
        if action not in SUBSCRIPTION_ACTIONS:
            raise BadRequestError("Unsupported action.", details={"action": action})

        handlers = {
            "activate": self.client.activate_subscription,
            "deactivate": self.client.deactivate_subscription,
            "delete": self.client.delete_subscription,
        }
        try:
            result = handlers[action](subscription_id)
        except UpstreamApiError as e:
            logger.error(
                f"Subscription action {action} failed for {subscription_id}: {e.message}"
            )
            self.audit_service.record(
                "volumetrica.subscription.action.failed",
                actor=actor,
                target_type="subscription",
                target_id=subscription_id,
                metadata={"error": e.message, "action": action},
            )
            raise UpstreamServiceError("Subscription update failed.", details=e.to_details())

        self.audit_service.record(
            f"volumetrica.subscription.{action}",
            actor=actor,
            target_type="subscription",
            target_id=subscription_id,
        )
        return result
