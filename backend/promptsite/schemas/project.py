from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Union
from datetime import datetime
import enum


ProjectId = Union[int, str]


class ProjectStatus(str, enum.Enum):
    """Persisted project lifecycle status"""
    PENDING = "pending"
    BUILDING = "building"
    READY = "ready"
    ERROR = "error"


class Project(BaseModel):
    """Project record as returned by the project store"""
    id: ProjectId
    name: Optional[str] = None
    description: Optional[str] = None
    deployment_url: Optional[str] = Field(default=None, alias="deploymentUrl")
    status: Optional[ProjectStatus] = None
    project_type: Optional[str] = Field(default=None, alias="projectType")
    user_id: Optional[ProjectId] = Field(default=None, alias="userId")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def is_deployed(self) -> bool:
        return bool(self.deployment_url)


class ProjectCreate(BaseModel):
    user_id: ProjectId = Field(..., alias="userId")
    name: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    project_type: str = Field(default="frontend", alias="projectType")

    model_config = ConfigDict(populate_by_name=True)


class ProjectUpdate(BaseModel):
    """Patch payload; only fields that were set are sent"""
    name: Optional[str] = None
    description: Optional[str] = None
    deployment_url: Optional[str] = Field(default=None, alias="deploymentUrl")
    status: Optional[ProjectStatus] = None

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")
