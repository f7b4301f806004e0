"""Shared fixtures: an in-memory workbook, a fake formula engine and a scripted agent."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from openpyxl import Workbook

from ai.service import AIService
from ai.session import AgentSession
from document.workbook import WorkbookDocument
from dto.response import ChatMessage
from engine.correction import CorrectionOrchestrator
from engine.executor import DispatchExecutor
from prompts.system import get_system_prompt

SALES_ROWS = [
    ["Zone", "Product", "Amount"],
    ["North", "Apple", 10],
    ["South", "Pear", 20],
    ["North", "Pear", 30],
    ["East", "Apple", 40],
    ["South", "Apple", 50],
]

Resolver = Callable[[str, str, str], Any]


class FakeEvaluator:
    """
    Stands in for the formula engine.

    Each formula cell is resolved from ``values`` (keyed by the formula
    text as stored) or, failing that, through ``resolve(sheet, coord,
    formula)``.  Unresolved cells are left out, so reads fall back to the
    formula text.
    """

    def __init__(self, values: Optional[Dict[str, Any]] = None, resolve: Optional[Resolver] = None):
        self.values = dict(values or {})
        self.resolve = resolve
        self.calls = 0

    def __call__(self, workbook: Workbook) -> Dict[Tuple[str, str], Any]:
        self.calls += 1
        computed: Dict[Tuple[str, str], Any] = {}
        for ws in workbook.worksheets:
            for row in ws.iter_rows():
                for cell in row:
                    text = cell.value
                    if not isinstance(text, str) or not text.startswith("="):
                        continue
                    if text in self.values:
                        value = self.values[text]
                    elif self.resolve is not None:
                        value = self.resolve(ws.title, cell.coordinate, text)
                    else:
                        continue
                    if value is not None:
                        computed[(ws.title.upper(), cell.coordinate)] = value
        return computed


class ScriptedService(AIService):
    """Replies from a script; records every request it receives."""

    def __init__(self, replies: List[Any]):
        self.replies = list(replies)
        self.requests: List[Tuple[List[ChatMessage], Optional[str]]] = []

    def get_decision(self, messages: List[ChatMessage], system_prompt: Optional[str] = None) -> str:
        self.requests.append((list(messages), system_prompt))
        if not self.replies:
            return json.dumps({"message": "Done."})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            return json.dumps(reply)
        return reply

    @property
    def prompts(self) -> List[str]:
        """The last user message of each request."""
        return [messages[-1].content for messages, _ in self.requests]


def make_workbook(rows: List[List[Any]], title: str = "Data") -> Workbook:
    wb = Workbook()
    ws = wb.active
    ws.title = title
    for row in rows:
        ws.append(row)
    return wb


@pytest.fixture
def evaluator() -> FakeEvaluator:
    return FakeEvaluator()


@pytest.fixture
def workbook() -> Workbook:
    return make_workbook(SALES_ROWS)


@pytest.fixture
def document(workbook: Workbook, evaluator: FakeEvaluator) -> WorkbookDocument:
    return WorkbookDocument(workbook, evaluator=evaluator, calc_timeout=5.0)


@pytest.fixture
def executor(document: WorkbookDocument) -> DispatchExecutor:
    return DispatchExecutor(document)


@pytest.fixture
def make_orchestrator(document: WorkbookDocument):
    """``make_orchestrator(replies, document=None, **kwargs) -> (orchestrator, service)``."""

    def _make(replies: List[Any], **kwargs: Any) -> Tuple[CorrectionOrchestrator, ScriptedService]:
        doc = kwargs.pop("document", document)
        service = ScriptedService(replies)
        executor = DispatchExecutor(doc)
        session = AgentSession(service, get_system_prompt(executor.supported_kinds))
        kwargs.setdefault("edit_mode", "auto")
        return CorrectionOrchestrator(session, doc, executor, **kwargs), service

    return _make
