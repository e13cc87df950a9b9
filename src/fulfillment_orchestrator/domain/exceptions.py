"""Domain exceptions for the Fulfillment Orchestrator.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.
"""


class OrchestratorError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "ORCHESTRATOR_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Validation Errors (rejected before any write) ---


class OrderValidationError(OrchestratorError):
    """Raised when input is well-formed but violates a business rule."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR") -> None:
        super().__init__(message=message, code=code)


class InvalidOrderTypeError(OrderValidationError):
    """Raised when an order type is not one the stage sequencer knows."""

    def __init__(self, order_type: object) -> None:
        super().__init__(
            message=f"Unrecognized order type: {order_type!r}",
            code="INVALID_ORDER_TYPE",
        )
        self.order_type = order_type


class InvalidAmountError(OrderValidationError):
    """Raised when an escrow amount is zero or negative."""

    def __init__(self, amount: object) -> None:
        super().__init__(
            message=f"Escrow amount must be positive, got {amount}",
            code="INVALID_AMOUNT",
        )
        self.amount = amount


# --- Escrow Errors ---


class EscrowError(OrchestratorError):
    """Base exception for escrow ledger rule violations."""


class NoActiveHoldError(EscrowError):
    """Raised when releasing or refunding against an order with no completed hold."""

    def __init__(self, order_id: str) -> None:
        super().__init__(
            message=f"No completed escrow hold for order: {order_id}",
            code="NO_ACTIVE_HOLD",
        )
        self.order_id = order_id


class OverReleaseError(EscrowError):
    """Raised when a release or refund exceeds the amount still held."""

    def __init__(self, order_id: str, requested: str, remaining: str) -> None:
        super().__init__(
            message=(
                f"Cannot draw {requested} from escrow for order {order_id}: "
                f"only {remaining} remains held"
            ),
            code="OVER_RELEASE",
        )
        self.order_id = order_id
        self.requested = requested
        self.remaining = remaining


# --- Lifecycle Errors ---


class OrderCreationFailedError(OrchestratorError):
    """Raised when an order could not be created; nothing from the attempt persists."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(
            message=f"Order could not be created, no changes were saved: {cause}",
            code="ORDER_CREATION_FAILED",
        )
        self.cause = cause


class OrderNotFoundError(OrchestratorError):
    """Raised when an order ID does not exist."""

    def __init__(self, order_id: str) -> None:
        super().__init__(
            message=f"Order not found: {order_id}",
            code="ORDER_NOT_FOUND",
        )
        self.order_id = order_id


class StageNotFoundError(OrchestratorError):
    """Raised when a stage ID does not belong to the given order."""

    def __init__(self, order_id: str, stage_id: str) -> None:
        super().__init__(
            message=f"Stage {stage_id} not found on order {order_id}",
            code="STAGE_NOT_FOUND",
        )


class InvalidStateTransitionError(OrchestratorError):
    """Raised when an attempted state transition is not allowed.

    Example: draft -> completed (must go through payment and fulfillment).
    """

    def __init__(self, current_state: str, attempted_event: str) -> None:
        super().__init__(
            message=f"Invalid transition: '{attempted_event}' from {current_state}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted_event = attempted_event


class StageOutOfSequenceError(OrchestratorError):
    """Raised when a stage is started before every earlier stage is completed."""

    def __init__(self, stage_id: str, blocking_sequence_no: int) -> None:
        super().__init__(
            message=(
                f"Stage {stage_id} cannot start: stage #{blocking_sequence_no} "
                "is not completed"
            ),
            code="STAGE_OUT_OF_SEQUENCE",
        )
        self.blocking_sequence_no = blocking_sequence_no


# --- Draft Errors ---


class DraftNotFoundError(OrchestratorError):
    """Raised when an order draft does not exist (or has expired)."""

    def __init__(self, draft_id: str) -> None:
        super().__init__(
            message=f"Order draft not found: {draft_id}",
            code="DRAFT_NOT_FOUND",
        )


# --- Sweep Errors ---


class SweepFailedError(OrchestratorError):
    """Raised when every order matched by a sweep failed to process."""

    def __init__(self, failed: int) -> None:
        super().__init__(
            message=f"Reminder sweep failed for all {failed} matched orders",
            code="SWEEP_FAILED",
        )
        self.failed = failed
