"""
Projects: named groups of rules with a member list.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from annotation_api.auth import AuthContext
from annotation_api.database import Project, ProjectMember, utcnow
from annotation_api.errors import InvalidStateError, NotFoundError
from annotation_api.guard import assert_creator_or_admin, assert_project_member
from annotation_api.models import ProjectCreateRequest, ProjectUpdateRequest
from annotation_api.rule_service import RuleService


logger = logging.getLogger(__name__)


class ProjectService:
    """Project CRUD; deleting a project deletes its rules."""

    def __init__(self, db: Session):
        self.db = db

    def list_projects(
        self,
        member: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Project]:
        query = self.db.query(Project).filter(Project.deleted.is_(None))
        if member is not None:
            query = query.filter(Project.member_rows.any(ProjectMember.username == member))
        return query.order_by(Project.id).offset(offset).limit(limit).all()

    def get_project(self, project_id: int) -> Project:
        """Get a project by id, including logically deleted ones."""
        project = self.db.query(Project).filter(Project.id == project_id).first()
        if not project:
            raise NotFoundError(f"Project not found with id: {project_id}")
        return project

    def create_project(self, request: ProjectCreateRequest, auth: AuthContext) -> Project:
        project = Project(
            name=request.name,
            description=request.description,
            created_by=auth.username,
            member_rows=[ProjectMember(username=auth.username)],
        )
        self.db.add(project)
        self.db.commit()
        self.db.refresh(project)

        logger.info(f"Project {project.id} created by {auth.username}")
        return project

    def update_project(
        self, project_id: int, request: ProjectUpdateRequest, auth: AuthContext
    ) -> Project:
        """
        Replace a project's name, description and members.

        Any current member may update; the project must keep at least one
        member.
        """
        project = self.get_project(project_id)
        if project.deleted is not None:
            raise InvalidStateError("Cannot update a deleted project")
        assert_project_member(project, auth)

        members = list(dict.fromkeys(m.strip() for m in request.members if m.strip()))
        if not members:
            raise InvalidStateError("Project must have at least one member")

        project.name = request.name
        project.description = request.description
        self._set_members(project, members)
        project.modified = utcnow()
        project.modified_by = auth.username

        self.db.commit()
        self.db.refresh(project)

        logger.info(f"Project {project.id} updated by {auth.username}")
        return project

    def delete_project(self, project_id: int, auth: AuthContext) -> Project:
        """Logically delete a project and, in the same transaction, its rules."""
        project = self.get_project(project_id)
        assert_creator_or_admin(project.created_by, auth)

        if project.deleted is None:
            project.deleted = utcnow()
            project.deleted_by = auth.username
            RuleService(self.db).delete_by_project(project.id, auth.username)
            self.db.commit()
            self.db.refresh(project)
            logger.info(f"Project {project.id} deleted by {auth.username}")

        return project

    @staticmethod
    def _set_members(project: Project, members: List[str]) -> None:
        # Keep existing rows so a retained member is never deleted and re-inserted
        wanted = set(members)
        for row in list(project.member_rows):
            if row.username not in wanted:
                project.member_rows.remove(row)
        existing = {row.username for row in project.member_rows}
        for username in members:
            if username not in existing:
                project.member_rows.append(ProjectMember(username=username))
