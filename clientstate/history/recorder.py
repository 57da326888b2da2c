"""
History Recorder: one-call helpers for the UI's common actions.

Builds the NewHistoryRecord for each action kind so view code does not
assemble titles and payloads itself.
"""

from __future__ import annotations

from typing import Optional, Sequence

from clientstate.history.records import (
    ApiTestPayload,
    ConsultPayload,
    ContentViewPayload,
    GeneratedContent,
    HistoryActionType,
    HistoryRecord,
    NewHistoryRecord,
    SearchPayload,
)
from clientstate.history.store import HistoryStore

CONSULT_TITLE_CHARS = 30


class HistoryRecorder:
    """Convenience facade over HistoryStore.add_item."""

    __slots__ = ("_store",)

    def __init__(self, store: HistoryStore) -> None:
        self._store = store

    def record_search(
        self,
        query: str,
        contents: Sequence[GeneratedContent] = (),
    ) -> HistoryRecord:
        return self._store.add_item(NewHistoryRecord(
            kind=HistoryActionType.SEARCH,
            title=f"Search: {query}",
            description=f"Searched for: {query}",
            query=query,
            result=SearchPayload(contents=tuple(contents)) if contents else None,
        ))

    def record_consult(
        self,
        question: str,
        contents: Sequence[GeneratedContent] = (),
    ) -> HistoryRecord:
        # Long questions are cut for the title; the full text stays in description
        return self._store.add_item(NewHistoryRecord(
            kind=HistoryActionType.PSYCHOLOGY_CONSULT,
            title=f"Consultation: {question[:CONSULT_TITLE_CHARS]}...",
            description=question,
            query=question,
            result=ConsultPayload(question=question, contents=tuple(contents)),
        ))

    def record_content_view(self, content: GeneratedContent) -> HistoryRecord:
        return self._store.add_item(NewHistoryRecord(
            kind=HistoryActionType.CONTENT_VIEW,
            title=f"Viewed: {content.title}",
            description=f"Opened content: {content.title}",
            result=ContentViewPayload(content=content),
        ))

    def record_api_test(
        self,
        endpoint: str,
        outcome: Optional[ApiTestPayload] = None,
    ) -> HistoryRecord:
        return self._store.add_item(NewHistoryRecord(
            kind=HistoryActionType.API_TEST,
            title=f"API test: {endpoint}",
            description=f"Tested endpoint: {endpoint}",
            query=endpoint,
            result=outcome,
        ))
