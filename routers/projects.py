from fastapi import APIRouter, HTTPException, Request
from schemas.projects import CreateProjectRequest, Project, ProjectResponse, ProjectListResponse
from backend import redis_backend
import uuid
from datetime import datetime
from logging_config import get_logger

logger = get_logger(__name__)

projects_router = APIRouter(prefix="/projects", tags=["projects"])


@projects_router.get("/get-all", response_model=ProjectListResponse)
async def get_all_projects(request: Request):
    client_host = request.client.host if request.client else 'unknown'
    logger.info(f"Project list request from {client_host}")
    try:
        projects = await redis_backend.list_projects()
    except Exception as e:
        logger.error(f"Error listing projects: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list projects")
    return ProjectListResponse(data=[Project(**project) for project in projects])


@projects_router.post("/create", status_code=201, response_model=ProjectResponse)
async def create_project(project: CreateProjectRequest, request: Request):
    # Body: { "name": "my-project", "description": "optional", "code": "optional initial code" }
    # Response 201: { "data": { "id": "...", "name": "...", "description": "...", "code": "...", "created_at": "..." } }
    client_host = request.client.host if request.client else 'unknown'
    logger.info(f"Project creation request from {client_host}, name: {project.name}")
    project_id = uuid.uuid4().hex
    project_data = {
        "name": project.name.strip(),
        "description": project.description or "",
        "code": project.code or "",
        "created_at": datetime.now().isoformat(),
    }
    try:
        await redis_backend.create_project(project_id, project_data)
    except Exception as e:
        logger.error(f"Error creating project: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create project")

    logger.info(f"Project {project_id} created successfully: name={project_data['name']}")
    return ProjectResponse(data=Project(id=project_id, **project_data))


@projects_router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(project_id: str):
    logger.info(f"Project details request for {project_id}")
    try:
        project = await redis_backend.get_project(project_id)
    except Exception as e:
        logger.error(f"Error fetching project {project_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch project")
    if not project:
        logger.warning(f"Project details failed: Project {project_id} not found")
        raise HTTPException(status_code=404, detail="Project not found")
    return ProjectResponse(data=Project(**project))
