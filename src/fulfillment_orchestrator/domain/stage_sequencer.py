"""Stage sequencing — derives the ordered fulfillment stages of an order.

Pure functions over order data: no database, no clock. The lifecycle manager
calls compute_stages() before writing anything, so an unknown order type is
rejected without side effects.

Rules:
    PURCHASE_DELIVER, CHAIN -> purchase (#1, pickup location), dropoff (#2)
    DIRECT_DROPOFF          -> dropoff (#1)
    ONSITE                  -> onsite (#1, at the dropoff location)
"""

from __future__ import annotations

from dataclasses import dataclass

from fulfillment_orchestrator.domain.enums import OrderType, StageStatus, StageType
from fulfillment_orchestrator.domain.exceptions import InvalidOrderTypeError


@dataclass(frozen=True)
class Location:
    """A point and/or address where a stage takes place. Every field is optional."""

    lat: float | None = None
    lng: float | None = None
    address_text: str | None = None


@dataclass(frozen=True)
class StageSpec:
    """A stage to be persisted for an order."""

    stage_type: StageType
    sequence_no: int
    location: Location
    status: StageStatus = StageStatus.PENDING


def parse_order_type(order_type: OrderType | str) -> OrderType:
    """Coerce a raw order type value, raising InvalidOrderTypeError if unknown."""
    try:
        return OrderType(order_type)
    except ValueError as err:
        raise InvalidOrderTypeError(order_type) from err


def compute_stages(
    order_type: OrderType | str,
    pickup: Location | None,
    dropoff: Location,
) -> list[StageSpec]:
    """Return the ordered stage list for an order.

    Sequence numbers start at 1 and are contiguous. Every order type except
    ONSITE ends with exactly one dropoff stage.

    Raises:
        InvalidOrderTypeError: If ``order_type`` is not a recognized value.
    """
    resolved = parse_order_type(order_type)

    if resolved is OrderType.ONSITE:
        return [StageSpec(stage_type=StageType.ONSITE, sequence_no=1, location=dropoff)]

    stages: list[StageSpec] = []
    if resolved.requires_acquisition:
        stages.append(
            StageSpec(
                stage_type=StageType.PURCHASE,
                sequence_no=1,
                location=pickup or Location(),
            )
        )

    stages.append(
        StageSpec(
            stage_type=StageType.DROPOFF,
            sequence_no=len(stages) + 1,
            location=dropoff,
        )
    )
    return stages
