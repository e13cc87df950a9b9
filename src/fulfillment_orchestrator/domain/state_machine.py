"""Order and Stage State Machine Guards.

Uses python-statemachine to enforce legal state transitions at the domain level.
No matter what the API or the reminder sweep asks for, an illegal transition
(e.g., draft -> completed) raises InvalidStateTransitionError.

The machines are instantiated per call at the row's current status and fired
before the ORM model's status field is updated.

Order transition table:
    draft           -> payment_pending  (submit)
    payment_pending -> paid             (confirm_payment)
    paid            -> in_progress      (start_fulfillment)
    in_progress     -> completed        (complete)
    completed       -> canceled         (expire)      reminder sweep only
    draft | payment_pending | paid | in_progress -> canceled  (cancel)

Stage transition table:
    pending     -> in_progress  (begin)
    in_progress -> completed    (finish)
    pending | in_progress -> canceled  (cancel)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from fulfillment_orchestrator.domain.exceptions import InvalidStateTransitionError


class _GuardMixin:
    """Shared constructor and helpers for the status guards."""

    def __init__(self, current_status: str) -> None:
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches the status enum)."""
        return str(self.current_state_value)


class OrderStateMachine(_GuardMixin, StateMachine):
    """State machine that guards order lifecycle transitions.

    Usage:
        sm = OrderStateMachine(current_status="paid")
        sm.start_fulfillment()
        sm.status  # "in_progress"
    """

    EVENTS = ("submit", "confirm_payment", "start_fulfillment", "complete", "cancel", "expire")

    DRAFT = State("Draft", value="draft", initial=True)
    PAYMENT_PENDING = State("Payment pending", value="payment_pending")
    PAID = State("Paid", value="paid")
    IN_PROGRESS = State("In progress", value="in_progress")
    COMPLETED = State("Completed", value="completed")
    CANCELED = State("Canceled", value="canceled", final=True)

    submit = DRAFT.to(PAYMENT_PENDING)
    confirm_payment = PAYMENT_PENDING.to(PAID)
    start_fulfillment = PAID.to(IN_PROGRESS)
    complete = IN_PROGRESS.to(COMPLETED)

    # Awaiting-pickup orders are only ever closed by the reminder sweep.
    expire = COMPLETED.to(CANCELED)

    cancel = (
        DRAFT.to(CANCELED)
        | PAYMENT_PENDING.to(CANCELED)
        | PAID.to(CANCELED)
        | IN_PROGRESS.to(CANCELED)
    )


class StageStateMachine(_GuardMixin, StateMachine):
    """State machine that guards a single fulfillment stage."""

    EVENTS = ("begin", "finish", "cancel")

    PENDING = State("Pending", value="pending", initial=True)
    IN_PROGRESS = State("In progress", value="in_progress")
    COMPLETED = State("Completed", value="completed", final=True)
    CANCELED = State("Canceled", value="canceled", final=True)

    begin = PENDING.to(IN_PROGRESS)
    finish = IN_PROGRESS.to(COMPLETED)
    cancel = PENDING.to(CANCELED) | IN_PROGRESS.to(CANCELED)


def fire_transition(
    machine_cls: type[OrderStateMachine] | type[StageStateMachine],
    current_status: str,
    event_name: str,
) -> str:
    """Validate a transition and return the resulting status.

    Creates a temporary state machine at ``current_status``, fires the named
    event and returns the new status string.

    Raises:
        InvalidStateTransitionError: If the event is unknown or not allowed
            from ``current_status``.
    """
    if event_name not in machine_cls.EVENTS:
        raise InvalidStateTransitionError(current_status, event_name)
    sm = machine_cls(current_status=current_status)
    try:
        getattr(sm, event_name)()
    except TransitionNotAllowed as err:
        raise InvalidStateTransitionError(current_status, event_name) from err
    return sm.status
