"""
Content repository interface.

Plans, journeys, cohorts and experiments are authored elsewhere; the engine
only reads their shape (length, window, streak eligibility) to validate
OutOfRange and TooEarly.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Protocol, Union

import structlog
from pydantic import TypeAdapter

from sequence_progress.domain.models import SequenceDefinition

logger = structlog.get_logger(__name__)

_definitions_adapter = TypeAdapter(list[SequenceDefinition])


class ContentRepository(Protocol):
    """Read-only source of sequence definitions."""

    async def get_sequence_definition(self, sequence_id: str) -> Optional[SequenceDefinition]:
        ...

    async def list_sequence_definitions(
        self, sequence_ids: Iterable[str]
    ) -> dict[str, SequenceDefinition]:
        ...


class InMemoryContentRepository:
    """In-memory content repository for tests and local development."""

    def __init__(self, definitions: Iterable[SequenceDefinition] = ()):
        self._definitions = {d.sequence_id: d for d in definitions}

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> InMemoryContentRepository:
        """
        Load definitions from a JSON array of SequenceDefinition objects.

        Raises:
            FileNotFoundError: If the file does not exist
            pydantic.ValidationError: If an entry is not a valid definition
        """
        definitions = _definitions_adapter.validate_json(Path(path).read_bytes())
        logger.info("content_loaded", path=str(path), sequences=len(definitions))
        return cls(definitions)

    def add(self, definition: SequenceDefinition) -> None:
        self._definitions[definition.sequence_id] = definition

    async def get_sequence_definition(self, sequence_id: str) -> Optional[SequenceDefinition]:
        return self._definitions.get(sequence_id)

    async def list_sequence_definitions(
        self, sequence_ids: Iterable[str]
    ) -> dict[str, SequenceDefinition]:
        return {
            sid: self._definitions[sid] for sid in set(sequence_ids) if sid in self._definitions
        }
