from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from singerpipe.models.tap_context import TapContext


class ExternalTapConfig(BaseModel):
    """An executable tap plus the file paths passed on its command line."""

    executable: str = Field(min_length=1)
    config: str
    catalog: Optional[str] = None
    state: Optional[str] = None
    properties: Optional[str] = None

    def to_context(self) -> TapContext:
        return TapContext(
            config=self.config,
            catalog=self.catalog,
            state=self.state,
            properties=self.properties,
        )


class PipelineConfig(BaseModel):
    pipeline_name: str
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    tap: ExternalTapConfig
