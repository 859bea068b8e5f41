# Repository layer - data access returning pydantic read models

from .base import BaseRepository
from .webhook_event_repository import WebhookEventRepository
from .account_repository import AccountRepository
from .subscription_repository import SubscriptionRepository
from .position_repository import PositionRepository
from .trade_repository import TradeRepository
from .platform_user_repository import PlatformUserRepository
from .audit_log_repository import AuditLogRepository
