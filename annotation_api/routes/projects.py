"""
API routes for projects.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from annotation_api.auth import AuthContext, require_user
from annotation_api.config import get_settings
from annotation_api.database import Project, get_db
from annotation_api.models import ProjectCreateRequest, ProjectResponse, ProjectUpdateRequest
from annotation_api.project_service import ProjectService


router = APIRouter(prefix="/project", tags=["Projects"])

settings = get_settings()


@router.get("", response_model=List[ProjectResponse])
def list_projects(
    member: Optional[str] = Query(default=None, description="Only projects with this member"),
    limit: int = Query(default=settings.default_page_size, ge=0, le=settings.max_page_size),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db)
) -> List[ProjectResponse]:
    """List all projects that are not deleted."""
    projects = ProjectService(db).list_projects(member=member, limit=limit, offset=offset)
    return [_project_to_response(p) for p in projects]


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(project_id: int, db: Session = Depends(get_db)) -> ProjectResponse:
    """Get a single project (may be deleted)."""
    return _project_to_response(ProjectService(db).get_project(project_id))


@router.post("", response_model=ProjectResponse)
def create_project(
    request: ProjectCreateRequest,
    auth: AuthContext = Depends(require_user),
    db: Session = Depends(get_db)
) -> ProjectResponse:
    """Create a project; the caller becomes its creator and first member."""
    return _project_to_response(ProjectService(db).create_project(request, auth))


@router.put("/{project_id}", response_model=ProjectResponse)
def update_project(
    project_id: int,
    request: ProjectUpdateRequest,
    auth: AuthContext = Depends(require_user),
    db: Session = Depends(get_db)
) -> ProjectResponse:
    """
    Update a project's details and members.

    Any member may update; at least one member must remain.
    """
    return _project_to_response(ProjectService(db).update_project(project_id, request, auth))


@router.delete("/{project_id}", response_model=ProjectResponse)
def delete_project(
    project_id: int,
    auth: AuthContext = Depends(require_user),
    db: Session = Depends(get_db)
) -> ProjectResponse:
    """Logically delete a project and all of its rules."""
    return _project_to_response(ProjectService(db).delete_project(project_id, auth))


def _project_to_response(project: Project) -> ProjectResponse:
    """Convert database Project to response model."""
    return ProjectResponse.model_validate(project)
