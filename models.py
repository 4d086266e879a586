from pydantic import AliasChoices, BaseModel, Field
from typing import Optional
from enum import Enum


class GroupBy(str, Enum):
    USER = "user"
    ENVIRONMENT = "environment"


class CamelModel(BaseModel):
    """Base for models that travel as camelCase JSON but are built by field name."""

    class Config:
        populate_by_name = True


class SessionRecord(CamelModel):
    id: Optional[str] = Field(None, description="Usage record identifier")
    user_id: Optional[str] = Field(None, alias="userId", description="User who ran the environment")
    environment_id: Optional[str] = Field(None, alias="environmentId", description="Environment identifier")
    environment_class_id: Optional[str] = Field(None, alias="environmentClassId", description="Environment class identifier")
    project_id: Optional[str] = Field(None, alias="projectId", description="Project identifier")
    runner_id: Optional[str] = Field(None, alias="runnerId", description="Runner identifier")
    started_at: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("startedAt", "createdAt", "started_at"),
        serialization_alias="startedAt",
        description="ISO-8601 instant the environment started",
    )
    stopped_at: Optional[str] = Field(None, alias="stoppedAt", description="ISO-8601 instant the environment stopped")

    class Config:
        populate_by_name = True
        extra = "ignore"
        json_schema_extra = {
            "example": {
                "id": "rec_0001",
                "userId": "u1",
                "environmentId": "e1",
                "environmentClassId": "cls_small",
                "projectId": "proj_web",
                "runnerId": "runner_eu",
                "startedAt": "2024-01-01T00:00:00Z",
                "stoppedAt": "2024-01-01T02:00:00Z"
            }
        }


class MemberDirectoryEntry(CamelModel):
    user_id: str = Field(..., alias="userId", description="User identifier, the directory key")
    display_name: Optional[str] = Field(
        "",
        validation_alias=AliasChoices("displayName", "fullName", "display_name"),
        serialization_alias="displayName",
        description="Name shown in reports",
    )
    email: Optional[str] = Field("", description="Member email address")
    avatar_url: Optional[str] = Field(None, alias="avatarUrl", description="Avatar image URL")

    class Config:
        populate_by_name = True
        extra = "ignore"
        json_schema_extra = {
            "example": {
                "userId": "u1",
                "displayName": "Alice",
                "email": "a@x.com"
            }
        }


class UsagePayload(CamelModel):
    usage_records: list[SessionRecord] = Field(default_factory=list, alias="usageRecords")
    members: list[MemberDirectoryEntry] = Field(default_factory=list)


class SessionEntry(CamelModel):
    start_time: str = Field(..., alias="startTime")
    end_time: str = Field(..., alias="endTime")
    duration_hours: float = Field(..., alias="durationHours")


class EnvironmentSubview(CamelModel):
    environment_id: str = Field(..., alias="environmentId")
    user_id: str = Field(..., alias="userId")
    user_name: str = Field(..., alias="userName")
    email: str = ""
    total_hours: float = Field(0.0, alias="totalHours")
    sessions: list[SessionEntry] = Field(default_factory=list)


class EnvironmentUsageView(EnvironmentSubview):
    """One row of the by-environment report, keyed by (environmentId, userId)."""


class UserUsageView(CamelModel):
    user_id: str = Field(..., alias="userId")
    user_name: str = Field(..., alias="userName")
    email: str = ""
    total_hours: float = Field(0.0, alias="totalHours")
    environments: list[EnvironmentSubview] = Field(default_factory=list)
