"""HubSpot CRM API access: REST client and the batch create pipeline."""

from .batch_create import BatchMetrics, create_with_retry, submit_batch
from .client import (
    BatchTooLargeError,
    HubSpotAuthError,
    HubSpotBatchError,
    HubSpotClient,
    HubSpotError,
    HubSpotNetworkError,
    HubSpotRateLimitError,
    HubSpotValidationError,
)

__all__ = [
    "HubSpotClient",
    "HubSpotError",
    "HubSpotValidationError",
    "HubSpotAuthError",
    "HubSpotRateLimitError",
    "HubSpotNetworkError",
    "HubSpotBatchError",
    "BatchTooLargeError",
    "BatchMetrics",
    "create_with_retry",
    "submit_batch",
]
