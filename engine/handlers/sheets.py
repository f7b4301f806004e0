"""
Sheet management: ``createSheet``, ``activateSheet``, ``deleteSheet``.
"""

from __future__ import annotations

from typing import Dict, Optional

from dto.actions import ActionBase, ActivateSheetAction, CreateSheetAction, DeleteSheetAction
from dto.region import InvalidAddressError, Region, split_sheet
from dto.results import ActionResult
from engine.handlers.base import BaseHandler, HandlerMethod, fail, ok


def target_sheet_name(action: ActionBase) -> Optional[str]:
    """
    The sheet a sheet-level action names.

    ``sheetName`` wins; otherwise a ``Sheet!A1`` prefix in ``range``, or a
    ``range`` that is not a cell address at all.
    """
    if action.sheet_name:
        return action.sheet_name.strip()
    sheet, address = split_sheet(action.range)
    if sheet:
        return sheet
    try:
        Region.parse(address)
    except InvalidAddressError:
        return address.strip() or None
    return None


class SheetHandler(BaseHandler):
    def kinds(self) -> Dict[str, HandlerMethod]:
        return {
            "createSheet": self.create,
            "activateSheet": self.activate,
            "deleteSheet": self.delete,
        }

    def create(self, action: CreateSheetAction) -> ActionResult:
        name = target_sheet_name(action)
        if not name:
            return fail(action, "No sheet name was given")
        ws = self.document.create_sheet(name)
        self.document.activate_sheet(ws.title)
        return ok(action, f'Created and activated sheet "{ws.title}"')

    def activate(self, action: ActivateSheetAction) -> ActionResult:
        name = target_sheet_name(action)
        if not name:
            return fail(action, "No sheet name was given")
        ws = self.document.activate_sheet(name)
        return ok(action, f'Activated sheet "{ws.title}"')

    def delete(self, action: DeleteSheetAction) -> ActionResult:
        name = target_sheet_name(action)
        if not name:
            return fail(action, "No sheet name was given")
        title = self.document.sheet(name).title
        self.document.delete_sheet(title)
        return ok(action, f'Deleted sheet "{title}"')
