"""Request bodies accepted by the conversion endpoints."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class UrlRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(min_length=1)
    name: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)


class ParentUrlRequest(UrlRequest):
    depth: int | None = Field(None, ge=0)
    max_pages: int | None = Field(None, alias="maxPages", ge=1)

    def merged_options(self) -> dict[str, Any]:
        options = dict(self.options)
        if self.depth is not None:
            options["depth"] = self.depth
        if self.max_pages is not None:
            options["maxPages"] = self.max_pages
        return options


class YouTubeRequest(UrlRequest):
    pass


class BatchItem(BaseModel):
    type: Literal["url", "parenturl", "youtube"]
    url: str = Field(min_length=1)
    name: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)


class JobAccepted(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    status: str
    message: str = ""


__all__ = ["BatchItem", "JobAccepted", "ParentUrlRequest", "UrlRequest", "YouTubeRequest"]
