"""Tests for stage sequencing."""

from __future__ import annotations

import pytest

from fulfillment_orchestrator.domain.enums import StageStatus, StageType
from fulfillment_orchestrator.domain.exceptions import InvalidOrderTypeError
from fulfillment_orchestrator.domain.stage_sequencer import Location, compute_stages

PICKUP = Location(lat=24.71, lng=46.67, address_text="Olaya St")
DROPOFF = Location(lat=24.77, lng=46.73, address_text="King Fahd Rd")


class TestAcquisitionTypes:
    @pytest.mark.parametrize("order_type", ["PURCHASE_DELIVER", "CHAIN"])
    def test_purchase_then_dropoff(self, order_type: str) -> None:
        stages = compute_stages(order_type, PICKUP, DROPOFF)

        assert [(s.stage_type, s.sequence_no) for s in stages] == [
            (StageType.PURCHASE, 1),
            (StageType.DROPOFF, 2),
        ]
        assert stages[0].location == PICKUP
        assert stages[1].location == DROPOFF

    def test_missing_pickup_gives_empty_location(self) -> None:
        stages = compute_stages("PURCHASE_DELIVER", None, DROPOFF)
        assert stages[0].location == Location()


class TestDirectTypes:
    @pytest.mark.parametrize("order_type", ["DIRECT_DROPOFF", "DIRECT"])
    def test_single_dropoff(self, order_type: str) -> None:
        stages = compute_stages(order_type, PICKUP, DROPOFF)

        assert len(stages) == 1
        assert stages[0].stage_type is StageType.DROPOFF
        assert stages[0].sequence_no == 1
        assert stages[0].location == DROPOFF

    def test_onsite_has_no_dropoff(self) -> None:
        stages = compute_stages("ONSITE", None, DROPOFF)

        assert [s.stage_type for s in stages] == [StageType.ONSITE]
        assert stages[0].location == DROPOFF


class TestInvariants:
    @pytest.mark.parametrize(
        "order_type", ["PURCHASE_DELIVER", "CHAIN", "DIRECT_DROPOFF", "ONSITE"]
    )
    def test_contiguous_pending_stages(self, order_type: str) -> None:
        stages = compute_stages(order_type, PICKUP, DROPOFF)

        assert [s.sequence_no for s in stages] == list(range(1, len(stages) + 1))
        assert all(s.status is StageStatus.PENDING for s in stages)

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(InvalidOrderTypeError) as exc_info:
            compute_stages("TELEPORT", PICKUP, DROPOFF)
        assert exc_info.value.code == "INVALID_ORDER_TYPE"
