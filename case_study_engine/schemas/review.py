"""Review discussion comments."""

from typing import Any

from pydantic import Field, TypeAdapter

from case_study_engine.schemas.base import RecordModel, UTCDateTime, utc_now

ANONYMOUS_AUTHOR = "Anonymous"


class ReviewComment(RecordModel):
    comment: str
    author: str = ANONYMOUS_AUTHOR
    timestamp: UTCDateTime = Field(default_factory=utc_now)


class ReviewThread(RecordModel):
    """Comment thread summary for one case study."""

    folder_name: str
    comment_count: int
    last_activity: UTCDateTime | None = None
    comments: list[ReviewComment] = Field(default_factory=list)


_comments_adapter: TypeAdapter[list[ReviewComment]] = TypeAdapter(list[ReviewComment])


def parse_comments(payload: Any) -> list[ReviewComment]:
    return _comments_adapter.validate_python(payload or [])


def dump_comments(comments: list[ReviewComment]) -> bytes:
    return _comments_adapter.dump_json(comments, by_alias=True, indent=2)
