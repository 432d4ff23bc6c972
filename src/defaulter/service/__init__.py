"""Run orchestration over configured libraries.

Public API:
- RunService: partial/clean/dry runs and webhook processing
- create_run_service: build a RunService from configuration
- WebhookEvent: parsed Tautulli webhook body
"""

from defaulter.service.bootstrap import create_run_service
from defaulter.service.exceptions import (
    InvalidWebhookError,
    LibraryRefreshError,
    NoViewersError,
    ServiceError,
)
from defaulter.service.libraries import LibraryRegistry, MappedLibrary
from defaulter.service.runner import RunService
from defaulter.service.webhook import WebhookEvent

__all__ = [
    "InvalidWebhookError",
    "LibraryRefreshError",
    "LibraryRegistry",
    "MappedLibrary",
    "NoViewersError",
    "RunService",
    "ServiceError",
    "WebhookEvent",
    "create_run_service",
]
