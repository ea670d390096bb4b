from pydantic import BaseModel, Field
from typing import Optional


class CreateProjectRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = ""
    code: Optional[str] = ""

class Project(BaseModel):
    id: str
    name: str
    description: str = ""
    code: str = ""
    created_at: str = ""

class ProjectResponse(BaseModel):
    data: Project

class ProjectListResponse(BaseModel):
    data: list[Project]
