"""
Authorization checks shared by rule, comment and project mutations.
"""

from annotation_api.auth import AuthContext
from annotation_api.database import Project
from annotation_api.errors import ForbiddenError


def assert_creator_or_admin(created_by: str, auth: AuthContext) -> None:
    """Allow the resource's creator or an administrator, refuse anyone else."""
    if auth.username == created_by or auth.is_admin:
        return
    raise ForbiddenError(
        f"User {auth.username} must be the creator ({created_by}) or an administrator"
    )


def assert_project_member(project: Project, auth: AuthContext) -> None:
    """Any current member may edit a project."""
    if auth.username not in project.members:
        raise ForbiddenError("User must be a member of the project being updated")
