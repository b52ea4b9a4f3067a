"""
Support and contest votes on rules.

A user's vote on a rule is one of: none, supporting, contesting. Each
operation is a single transition of that state, applied to the one
vote row for the (rule, user) pair inside one transaction, so a user is
never seen in both the supporters and the contesters of a rule.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from annotation_api.auth import AuthContext
from annotation_api.database import Rule, RuleVote
from annotation_api.models import VoteAction, VoteStance
from annotation_api.rule_service import RuleService


logger = logging.getLogger(__name__)


def transition(current: Optional[VoteStance], action: VoteAction) -> Optional[VoteStance]:
    """
    Next vote state for a user after ``action``.

    Supporting replaces a contest and vice versa; removing a vote the
    user does not hold changes nothing.
    """
    if action is VoteAction.SUPPORT:
        return VoteStance.SUPPORT
    if action is VoteAction.CONTEST:
        return VoteStance.CONTEST
    if action is VoteAction.REMOVE_SUPPORT:
        return None if current is VoteStance.SUPPORT else current
    if action is VoteAction.REMOVE_CONTEST:
        return None if current is VoteStance.CONTEST else current
    raise ValueError(f"Unknown vote action: {action}")


class VotingService:
    """Apply vote transitions for the acting user."""

    def __init__(self, db: Session):
        self.db = db
        self.rules = RuleService(db)

    def vote(self, rule_id: int, action: VoteAction, auth: AuthContext) -> Rule:
        """
        Apply ``action`` for the acting user and return the rule.

        Any authenticated user may vote on any non-deleted rule,
        including their own.
        """
        rule = self.rules.get_active_rule(rule_id, "vote on")

        vote = next((v for v in rule.votes if v.username == auth.username), None)
        current = VoteStance(vote.stance) if vote else None
        target = transition(current, action)

        if target == current:
            return rule

        if target is None:
            rule.votes.remove(vote)
        elif vote is None:
            rule.votes.append(RuleVote(username=auth.username, stance=target.value))
        else:
            vote.stance = target.value

        self.db.commit()
        self.db.refresh(rule)

        logger.info(
            f"{auth.username} {action.value} on rule {rule_id}: "
            f"{current.value if current else 'none'} -> {target.value if target else 'none'}"
        )
        return rule

    def support(self, rule_id: int, auth: AuthContext) -> Rule:
        return self.vote(rule_id, VoteAction.SUPPORT, auth)

    def contest(self, rule_id: int, auth: AuthContext) -> Rule:
        return self.vote(rule_id, VoteAction.CONTEST, auth)

    def remove_support(self, rule_id: int, auth: AuthContext) -> Rule:
        return self.vote(rule_id, VoteAction.REMOVE_SUPPORT, auth)

    def remove_contest(self, rule_id: int, auth: AuthContext) -> Rule:
        return self.vote(rule_id, VoteAction.REMOVE_CONTEST, auth)
