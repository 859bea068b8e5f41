from .webhook import WebhookAckResponse, WebhookOutcome
from .reconcile import ReconcileRequest, ReconcileResult
from .volumetrica import AccountResponse, TradeResponse, WebhookEventResponse
