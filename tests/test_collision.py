"""Unit tests — CollisionGuard relocation."""

from __future__ import annotations

import pytest

from document import WorkbookDocument
from dto.region import Region
from engine.collision import CollisionError, CollisionGuard
from tests.conftest import FakeEvaluator, make_workbook


def _document(rows) -> WorkbookDocument:
    return WorkbookDocument(make_workbook(rows, title="Sheet"), evaluator=FakeEvaluator())


@pytest.mark.unit
class TestCollisionGuard:
    def test_empty_target_is_kept(self, document: WorkbookDocument) -> None:
        target = Region.parse("E1:E3", sheet="Data")
        decision = CollisionGuard(document).resolve(target)
        assert decision.region == target
        assert not decision.relocated

    def test_occupied_target_moves_right_of_used_range(self, document: WorkbookDocument) -> None:
        target = Region.parse("B2:B4", sheet="Data")
        decision = CollisionGuard(document).resolve(target)
        assert decision.relocated
        assert decision.requested == target
        # Used range ends in column C; one empty column is left between.
        assert decision.region.address == "Data!E1:E3"

    def test_relocated_region_starts_at_row_one(self) -> None:
        doc = _document([[None], ["old"]])
        decision = CollisionGuard(doc).resolve(Region.parse("A2:A4", sheet="Sheet"))
        assert decision.region.address == "Sheet!C1:C3"

    def test_allow_overwrite_keeps_the_target(self, document: WorkbookDocument) -> None:
        target = Region.parse("A1:B2", sheet="Data")
        decision = CollisionGuard(document).resolve(target, allow_overwrite=True)
        assert decision.region == target
        assert not decision.relocated

    def test_stray_cells_extend_the_used_range(self, document: WorkbookDocument) -> None:
        document.sheet().cell(row=6, column=5).value = "note"
        decision = CollisionGuard(document).resolve(Region.parse("A1", sheet="Data"))
        assert decision.region.address == "Data!G1"

    def test_gives_up_after_max_attempts(self, document: WorkbookDocument) -> None:
        guard = CollisionGuard(document, max_attempts=0)
        with pytest.raises(CollisionError) as info:
            guard.resolve(Region.parse("A1", sheet="Data"))
        assert "allowOverwrite" in str(info.value)
