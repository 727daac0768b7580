"""Request parameter models for Kaiten endpoints.

Bodies and queries are validated here, then dumped with ``exclude_none`` so
unset fields never reach the upstream.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator

from kaiten_mcp.foundation.types import JsonDict

Id = PositiveInt
Limit = Annotated[int, Field(ge=1, le=100)]
IsoDate = Annotated[str, Field(min_length=1, description="ISO 8601 date or datetime")]
IdList = Annotated[str, Field(pattern=r"^\d+(,\d+)*$", description="Comma-separated ids, e.g. '1,2,3'")]


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    def payload(self) -> JsonDict:
        return self.model_dump(exclude_none=True, mode="json")


class CardCreate(_Payload):
    """Body of ``POST /cards``."""

    title: Annotated[str, Field(min_length=1, max_length=1024)]
    board_id: Id
    column_id: Id | None = None
    lane_id: Id | None = None
    description: str | None = None
    type_id: Id | None = None
    size: Annotated[float, Field(ge=0)] | None = None
    asap: bool | None = None
    owner_id: Id | None = None
    due_date: IsoDate | None = None
    properties: dict[str, Any] | None = Field(default=None, description="Custom field values keyed by property id")


class CardUpdate(_Payload):
    """Body of ``PATCH /cards/{id}``. At least one field must be set."""

    title: Annotated[str, Field(min_length=1, max_length=1024)] | None = None
    description: str | None = None
    state: Annotated[int, Field(ge=1, le=3)] | None = None
    column_id: Id | None = None
    lane_id: Id | None = None
    type_id: Id | None = None
    size: Annotated[float, Field(ge=0)] | None = None
    asap: bool | None = None
    owner_id: Id | None = None
    due_date: IsoDate | None = None
    properties: dict[str, Any] | None = None

    def payload(self) -> JsonDict:
        data = super().payload()
        if not data:
            raise ValueError("CardUpdate requires at least one field")
        return data


SortBy = Literal["created", "updated", "title", "sort_order", "due_date", "last_moved_at"]
SortDirection = Literal["asc", "desc"]


class CardSearch(_Payload):
    """Query of ``GET /cards``.

    ``limit``, ``skip``, ``sort_by`` and ``sort_direction`` always have values
    so the upstream returns a bounded, newest-first page by default.
    """

    query: str | None = None
    title: str | None = None

    space_id: Id | None = None
    board_id: Id | None = None
    column_id: Id | None = None
    lane_id: Id | None = None
    state: Annotated[int, Field(ge=1, le=3)] | None = None
    owner_id: Id | None = None
    type_id: Id | None = None
    condition: Annotated[int, Field(ge=1, le=2)] | None = None

    created_before: IsoDate | None = None
    created_after: IsoDate | None = None
    updated_before: IsoDate | None = None
    updated_after: IsoDate | None = None
    due_date_before: IsoDate | None = None
    due_date_after: IsoDate | None = None
    last_moved_to_done_at_before: IsoDate | None = None
    last_moved_to_done_at_after: IsoDate | None = None

    asap: bool | None = None
    archived: bool | None = None
    overdue: bool | None = None
    done_on_time: bool | None = None
    with_due_date: bool | None = None

    owner_ids: IdList | None = None
    member_ids: IdList | None = None
    column_ids: IdList | None = None
    type_ids: IdList | None = None
    tag_ids: IdList | None = None
    exclude_board_ids: IdList | None = None
    exclude_owner_ids: IdList | None = None
    exclude_card_ids: IdList | None = None

    sort_by: SortBy = "created"
    sort_direction: SortDirection = "desc"
    limit: Limit = 10
    skip: Annotated[int, Field(ge=0)] = 0

    @field_validator("query", "title")
    @classmethod
    def _blank_to_none(cls, v: str | None) -> str | None:
        return v or None


class UserQuery(_Payload):
    """Query of ``GET /users``."""

    query: str | None = None
    limit: Limit | None = None
    offset: Annotated[int, Field(ge=0)] | None = None

    @property
    def is_unfiltered(self) -> bool:
        return not self.payload()
