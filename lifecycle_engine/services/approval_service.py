"""Approval workflow hand-off."""

import logging
from abc import ABC, abstractmethod
from collections import deque

from lifecycle_engine.schemas.transition import StatusTransitionContext, ValidationResult

logger = logging.getLogger(__name__)


class ApprovalNotifier(ABC):
    """Receives transitions that are valid but need a manager's approval."""

    @abstractmethod
    async def request_approval(
        self, context: StatusTransitionContext, result: ValidationResult
    ) -> None:
        """Hand the transition to the approval workflow."""


class LoggingApprovalNotifier(ApprovalNotifier):
    """Records approval requests in the application log.

    The most recent requests are also kept in memory for inspection.
    """

    def __init__(self, keep: int = 100) -> None:
        self.requests: deque[tuple[StatusTransitionContext, ValidationResult]] = deque(maxlen=keep)

    async def request_approval(
        self, context: StatusTransitionContext, result: ValidationResult
    ) -> None:
        self.requests.append((context, result))
        reasons = "; ".join(result.approval_reasons) or result.approval_reason or "unspecified"
        logger.info(
            f"Approval requested for reservation {context.reservation_id} "
            f"({context.current_status.value} -> {context.new_status.value}) "
            f"by {context.user_id}: {reasons}"
        )
