"""
Dispatch Executor — run actions one at a time against the live document.

Dispatches each action to the handler that owns its kind and returns an
``ActionResult``.  Never raises: any exception while executing an action
is captured into that action's result, so one bad action never aborts
the rest of the batch.  Write and formula results are passed through the
validator before they are returned; a write that cannot be read back
(e.g. recalculation timed out) fails.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from document.workbook import WorkbookDocument
from dto.actions import WRITE_KINDS, ActionBase, UnknownAction
from dto.results import ActionResult
from engine.collision import CollisionGuard
from engine.handlers.base import BaseHandler, HandlerContext, HandlerMethod, fail
from engine.handlers.data import QueryHandler, WriteHandler
from engine.handlers.formatting import FormattingHandler
from engine.handlers.sheets import SheetHandler
from engine.handlers.structure import StructureHandler
from engine.validator import validate

logger = logging.getLogger(__name__)


class DispatchExecutor:
    """
    Owns one handler per action family and a kind → method table built
    from their ``kinds()`` maps.
    """

    def __init__(self, document: WorkbookDocument, guard: Optional[CollisionGuard] = None) -> None:
        self.document = document
        self.ctx = HandlerContext(document, guard)
        self._handlers: List[BaseHandler] = [
            WriteHandler(self.ctx),
            QueryHandler(self.ctx),
            SheetHandler(self.ctx),
            StructureHandler(self.ctx),
            FormattingHandler(self.ctx),
        ]
        self._dispatch: Dict[str, HandlerMethod] = {}
        for handler in self._handlers:
            self._dispatch.update(handler.kinds())

    @property
    def supported_kinds(self) -> List[str]:
        return sorted(self._dispatch)

    def execute(self, action: ActionBase) -> ActionResult:
        kind = action.type  # type: ignore[attr-defined]
        method = None if isinstance(action, UnknownAction) else self._dispatch.get(kind)
        if method is None:
            reason = action.reason if isinstance(action, UnknownAction) else ""
            logger.warning("  [Executor] Unknown action %r: %s", kind, reason)
            return fail(action, reason or f"Unknown action type: {kind!r}")

        logger.info("  [Executor] %s", action.label())
        try:
            result = method(action)
        except Exception as exc:
            logger.warning("  [Executor] %s failed: %s", action.label(), exc)
            logger.debug("  [Executor] traceback", exc_info=True)
            return fail(action, str(exc) or type(exc).__name__)

        if kind in WRITE_KINDS and result.success:
            try:
                result = validate(action, result, self.document)
            except Exception as exc:
                logger.warning("  [Executor] Validation of %s failed: %s", action.label(), exc)
                return fail(
                    action,
                    str(exc) or type(exc).__name__,
                    final_address=result.final_address,
                    relocated=result.relocated,
                )
        return result

    def execute_all(self, actions: Sequence[ActionBase]) -> List[ActionResult]:
        """Execute *actions* strictly in order; each gets its own result."""
        results = [self.execute(action) for action in actions]
        failed = sum(1 for r in results if r.failed)
        logger.info(
            "  [Executor] Batch done: %d action(s), %d failed", len(results), failed
        )
        return results
