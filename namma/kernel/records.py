"""Record shapes for the application's collections.

The store itself is schema-free. These models are checked at the
MutationAPI boundary only. Field names on disk are camelCase; Python
attributes are snake_case with aliases.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from namma.kernel.types import Timestamp


def model_document(model: BaseModel, *, exclude_none: bool = False) -> dict[str, Any]:
    """
    Alias-keyed fields of a model as a plain dict. Values are taken as they
    are, so Timestamps stay Timestamps (model_dump would turn them into dicts).
    """
    document: dict[str, Any] = {}
    for name, info in type(model).model_fields.items():
        value = getattr(model, name)
        if exclude_none and value is None:
            continue
        if isinstance(value, BaseModel):
            value = model_document(value, exclude_none=exclude_none)
        document[info.alias or name] = value
    for name, value in (model.model_extra or {}).items():
        if exclude_none and value is None:
            continue
        document[name] = value
    return document


class Record(BaseModel):
    """Fields every workspace-scoped document carries."""

    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    user_id: str | None = Field(default=None, alias="userId")
    workspace_id: str | None = Field(default=None, alias="workspaceId")
    created_at: Timestamp | None = Field(default=None, alias="createdAt")

    def to_document(self) -> dict[str, Any]:
        return model_document(self, exclude_none=True)


class TaskRecord(Record):
    """A to-do item. `order` is the rank used for drag-reordering."""

    title: str = Field(min_length=1)
    description: str = ""
    status: Literal["todo", "in-progress", "done"] | None = None
    completed: bool = False
    order: int | float | None = None
    due_date: Timestamp | None = Field(default=None, alias="dueDate")
    user_email: str | None = Field(default=None, alias="userEmail")


class NoteRecord(Record):
    title: str = ""
    content: str = ""
    author: str | None = None
    updated_at: Timestamp | None = Field(default=None, alias="updatedAt")


class HabitRecord(Record):
    title: str = Field(min_length=1)
    streak: int = Field(default=0, ge=0)
    history: list[Any] = Field(default_factory=list)


class EventRecord(Record):
    title: str = Field(min_length=1)
    date: str = ""
    time: str = ""
    location: str = ""
    description: str = ""


class ProjectRecord(Record):
    title: str = Field(min_length=1)
    description: str = ""
    deadline: str = ""
    status: Literal["active", "completed", "on-hold"] = "active"
    progress: int = Field(default=0, ge=0, le=100)
    files: list[Any] = Field(default_factory=list)
    comments: list[Any] = Field(default_factory=list)


class RoutineRecord(Record):
    title: str = Field(min_length=1)
    start_time: str = Field(default="09:00", alias="startTime")
    end_time: str = Field(default="10:00", alias="endTime")
    completed: bool = False


class ExamRecord(Record):
    subject: str = Field(min_length=1)
    date: str = ""
    modules: list[Any] = Field(default_factory=list)


# Collection name -> record shape
RECORD_TYPES: dict[str, type[Record]] = {
    "tasks": TaskRecord,
    "notes": NoteRecord,
    "habits": HabitRecord,
    "events": EventRecord,
    "projects": ProjectRecord,
    "routines": RoutineRecord,
    "exams": ExamRecord,
}


def record_type(collection_name: str) -> type[Record] | None:
    return RECORD_TYPES.get(collection_name)
