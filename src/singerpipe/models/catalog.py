from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from singerpipe.core.exceptions import DeserializationError


class StreamMetadata(BaseModel):
    metadata: Any
    breadcrumb: List[str]


class CatalogStream(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    stream: str
    tap_stream_id: str
    json_schema: Dict[str, Any] = Field(alias="schema")
    table_name: Optional[str] = None
    metadata: Optional[List[StreamMetadata]] = None

    def metadata_for(self, breadcrumb: List[str]) -> Optional[Any]:
        """Return the metadata annotation for ``breadcrumb`` (``[]`` is the stream itself)."""
        for entry in self.metadata or []:
            if entry.breadcrumb == list(breadcrumb):
                return entry.metadata
        return None

    def is_selected(self) -> bool:
        root = self.metadata_for([])
        if isinstance(root, dict):
            return bool(root.get("selected", root.get("selected-by-default", False)))
        return False


class Catalog(BaseModel):
    """Discovery output: the streams a tap can emit and their schemas."""

    streams: List[CatalogStream] = Field(default_factory=list)

    def get_stream(self, tap_stream_id: str) -> Optional[CatalogStream]:
        for stream in self.streams:
            if stream.tap_stream_id == tap_stream_id:
                return stream
        return None

    def selected_streams(self) -> List[CatalogStream]:
        return [s for s in self.streams if s.is_selected()]

    def to_json(self, *, indent: Optional[int] = None) -> str:
        return self.model_dump_json(by_alias=True, indent=indent)

    @classmethod
    def from_json(cls, data: Union[str, bytes]) -> "Catalog":
        try:
            return cls.model_validate_json(data)
        except ValidationError as exc:
            raise DeserializationError(str(exc)) from exc

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Catalog":
        return cls.from_json(Path(path).read_bytes())
