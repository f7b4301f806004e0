"""
Base class and shared plumbing for action handlers.

A handler owns a family of action kinds.  ``kinds()`` maps each kind tag
to the bound method that executes it; the executor builds its dispatch
table from those maps.  Handler methods may raise freely: the executor
turns any exception into a failed ``ActionResult``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from openpyxl.worksheet.worksheet import Worksheet

from document.workbook import WorkbookDocument
from dto.actions import ActionBase
from dto.region import Region
from dto.results import ActionResult
from engine.collision import CollisionGuard

HandlerMethod = Callable[[ActionBase], ActionResult]


class HandlerContext:
    """What every handler needs: the document and the collision guard."""

    def __init__(self, document: WorkbookDocument, guard: Optional[CollisionGuard] = None):
        self.document = document
        self.guard = guard or CollisionGuard(document)

    def region_of(self, action: ActionBase) -> Region:
        """
        The action's target region, qualified with a sheet name.

        An explicit ``Sheet!A1`` prefix wins, then ``sheetName``, then the
        active sheet.
        """
        region = action.region(action.sheet_name)
        sheet = region.sheet or self.document.active_sheet_name
        return region.on_sheet(self.document.sheet(sheet).title)

    def worksheet_of(self, action: ActionBase) -> Worksheet:
        return self.document.sheet(self.region_of(action).sheet)


class BaseHandler(ABC):
    def __init__(self, ctx: HandlerContext):
        self.ctx = ctx

    @property
    def document(self) -> WorkbookDocument:
        return self.ctx.document

    @abstractmethod
    def kinds(self) -> Dict[str, HandlerMethod]:
        """``{kind_tag: method}`` for every kind this handler executes."""
        ...


def ok(action: ActionBase, message: str, **fields: Any) -> ActionResult:
    fields.setdefault("requested_address", action.range)
    return ActionResult(action_type=action.type, success=True, message=message, **fields)  # type: ignore[attr-defined]


def fail(action: ActionBase, error: str, **fields: Any) -> ActionResult:
    fields.setdefault("requested_address", action.range)
    return ActionResult(
        action_type=action.type,  # type: ignore[attr-defined]
        success=False,
        message=f"Error in {action.range}",
        error=error,
        **fields,
    )
