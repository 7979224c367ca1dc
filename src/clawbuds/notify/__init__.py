"""Fire-and-forget outbound notifications."""

from clawbuds.notify.webhooks import (
    WebhookDelivery,
    WebhookNotifier,
    WebhookTarget,
    generate_signature,
    verify_signature,
)

__all__ = [
    "WebhookDelivery",
    "WebhookNotifier",
    "WebhookTarget",
    "generate_signature",
    "verify_signature",
]
