"""
Comments on rules.
"""

import logging
from typing import List

from sqlalchemy.orm import Session

from annotation_api.auth import AuthContext
from annotation_api.database import Comment, utcnow
from annotation_api.errors import NotFoundError
from annotation_api.guard import assert_creator_or_admin
from annotation_api.models import CommentRequest
from annotation_api.rule_service import RuleService


logger = logging.getLogger(__name__)


class CommentService:
    """Add, list and logically delete rule comments."""

    def __init__(self, db: Session):
        self.db = db
        self.rules = RuleService(db)

    def list_comments(self, rule_id: int) -> List[Comment]:
        """Non-deleted comments on a rule, oldest first."""
        self.rules.get_rule(rule_id)
        return (
            self.db.query(Comment)
            .filter(Comment.rule_id == rule_id, Comment.deleted.is_(None))
            .order_by(Comment.id)
            .all()
        )

    def add_comment(self, rule_id: int, request: CommentRequest, auth: AuthContext) -> Comment:
        self.rules.get_active_rule(rule_id, "comment on")

        comment = Comment(rule_id=rule_id, comment=request.comment, created_by=auth.username)
        self.db.add(comment)
        self.db.commit()
        self.db.refresh(comment)

        logger.info(f"Comment {comment.id} added to rule {rule_id} by {auth.username}")
        return comment

    def delete_comment(self, rule_id: int, comment_id: int, auth: AuthContext) -> Comment:
        """Logically delete a comment; only its author or an administrator may."""
        comment = self.db.query(Comment).filter(
            Comment.id == comment_id,
            Comment.rule_id == rule_id,
        ).first()
        if not comment:
            raise NotFoundError(f"Comment {comment_id} not found on rule {rule_id}")

        assert_creator_or_admin(comment.created_by, auth)

        if comment.deleted is None:
            comment.deleted = utcnow()
            comment.deleted_by = auth.username
            self.db.commit()
            self.db.refresh(comment)
            logger.info(f"Comment {comment_id} deleted by {auth.username}")

        return comment
