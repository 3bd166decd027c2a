"""Payment initiation, webhook handling and post-redirect reconciliation."""

from orderwise.payments.gateway import (
    PaymentGatewayAdapter,
    PaymentInitiation,
)
from orderwise.payments.reconciliation import (
    ReconciliationOutcome,
    ReconciliationPoller,
    ReconciliationResult,
    RedirectStatus,
    parse_redirect,
)
from orderwise.payments.webhook import WebhookProcessor, WebhookResult

__all__ = [
    "PaymentGatewayAdapter",
    "PaymentInitiation",
    "ReconciliationOutcome",
    "ReconciliationPoller",
    "ReconciliationResult",
    "RedirectStatus",
    "WebhookProcessor",
    "WebhookResult",
    "parse_redirect",
]
