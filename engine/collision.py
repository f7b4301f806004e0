"""
Collision guard — never let a write land on existing data by accident.

Before a write/formula action executes, its target region (already sized
to the payload) is probed.  An occupied target is relocated to the right
of the sheet's used range: candidates start RELOCATION_COLUMN_GAP columns
past the last used column, anchored at row 1, and move one column further
per attempt.  A candidate is accepted only when the whole strip it would
occupy, down to the last used row, is empty.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel

from document.workbook import WorkbookDocument
from dto.region import Region
from engine.constants import MAX_RELOCATION_ATTEMPTS, RELOCATION_COLUMN_GAP

logger = logging.getLogger(__name__)


class CollisionError(Exception):
    """No empty region could be found for an occupied write target."""


class GuardDecision(BaseModel):
    requested: Region
    region: Region
    relocated: bool = False


class CollisionGuard:
    def __init__(
        self,
        document: WorkbookDocument,
        max_attempts: int = MAX_RELOCATION_ATTEMPTS,
        column_gap: int = RELOCATION_COLUMN_GAP,
    ):
        self.document = document
        self.max_attempts = max_attempts
        self.column_gap = column_gap

    def resolve(self, target: Region, allow_overwrite: bool = False) -> GuardDecision:
        """
        Return where a write sized like *target* may safely land.

        Probes run one after the other; each candidate is checked against
        the document as it is at that moment.
        """
        if allow_overwrite:
            logger.debug("  [Guard] %s: overwrite explicitly allowed", target)
            return GuardDecision(requested=target, region=target)

        if self.document.is_region_empty(target):
            return GuardDecision(requested=target, region=target)

        sheet = self.document.sheet(target.sheet).title
        used = self.document.used_region(sheet)
        if used is None:
            return GuardDecision(requested=target, region=target)
        strip_height = max(target.num_rows, used.max_row)

        for attempt in range(self.max_attempts):
            col = used.max_col + self.column_gap + attempt
            candidate = Region.from_origin(1, col, target.num_rows, target.num_cols, sheet=sheet)
            strip = Region.from_origin(1, col, strip_height, target.num_cols, sheet=sheet)
            if self.document.is_region_empty(strip):
                logger.info(
                    "  [Guard] %s holds data — relocating write to %s", target, candidate
                )
                return GuardDecision(requested=target, region=candidate, relocated=True)

        raise CollisionError(
            f"Target {target.address} already contains data and no empty "
            f"{target.num_rows}x{target.num_cols} region was found within "
            f"{self.max_attempts} columns to the right of the used range. "
            "Set allowOverwrite to replace the existing data."
        )
