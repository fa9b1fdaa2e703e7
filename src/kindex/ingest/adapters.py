"""Source adapters: a uniform read-only view of content-bearing entities.

KnowledgeService only depends on the ``EmbeddingSource`` protocol. Supporting
a new content type means writing one adapter and registering it in
``SOURCE_ADAPTERS``; the service itself does not change. Adapters never
mutate the entity they wrap.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol, runtime_checkable

from kindex.db.models import RESOURCE, TRANSCRIPTION, Resource, Transcription


@runtime_checkable
class EmbeddingSource(Protocol):
    """Capability interface for anything that can be chunked and embedded."""

    def get_content(self) -> str | None: ...

    def get_source_type(self) -> str: ...

    def get_source_id(self) -> str: ...

    def get_user_id(self) -> str | None: ...

    def get_project_id(self) -> str | None: ...

    def get_metadata(self) -> dict[str, Any]: ...


class TranscriptionSource:
    """Adapter for a meeting transcription."""

    def __init__(self, transcription: Transcription) -> None:
        self._t = transcription

    def get_content(self) -> str | None:
        return self._t.transcription

    def get_source_type(self) -> str:
        return TRANSCRIPTION

    def get_source_id(self) -> str:
        return self._t.id

    def get_user_id(self) -> str | None:
        return self._t.user_id

    def get_project_id(self) -> str | None:
        return self._t.project_id

    def get_metadata(self) -> dict[str, Any]:
        return {"title": self._t.title, "meeting_date": self._t.meeting_date}


class ResourceSource:
    """Adapter for a saved resource; embeds ``content``, falling back to ``raw_content``."""

    def __init__(self, resource: Resource) -> None:
        self._r = resource

    def get_content(self) -> str | None:
        return self._r.content or self._r.raw_content

    def get_source_type(self) -> str:
        return RESOURCE

    def get_source_id(self) -> str:
        return self._r.id

    def get_user_id(self) -> str | None:
        return self._r.user_id

    def get_project_id(self) -> str | None:
        return self._r.project_id

    def get_metadata(self) -> dict[str, Any]:
        return {
            "title": self._r.title,
            "url": self._r.url,
            "content_type": self._r.content_type,
            "author": self._r.author,
            "published_at": self._r.published_at,
        }


SOURCE_ADAPTERS: dict[str, Callable[[Any], EmbeddingSource]] = {
    TRANSCRIPTION: TranscriptionSource,
    RESOURCE: ResourceSource,
}


def adapt(source_type: str, entity: Any) -> EmbeddingSource:
    """Wrap *entity* in the adapter registered for *source_type*.

    Raises:
        ValueError: If no adapter is registered for *source_type*.
    """
    try:
        factory = SOURCE_ADAPTERS[source_type]
    except KeyError:
        raise ValueError(f"No adapter registered for source type '{source_type}'") from None
    return factory(entity)
