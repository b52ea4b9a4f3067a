"""
Tests for support/contest voting.
"""

import itertools
import random

import pytest

from annotation_api.database import RuleVote
from annotation_api.errors import InvalidStateError, NotFoundError
from annotation_api.models import RuleFilter, VoteAction, VoteStance
from annotation_api.rule_service import RuleService
from annotation_api.voting_service import VotingService, transition


class TestTransition:
    """Tests for the pure vote state machine."""

    @pytest.mark.parametrize("current,action,expected", [
        (None, VoteAction.SUPPORT, VoteStance.SUPPORT),
        (VoteStance.CONTEST, VoteAction.SUPPORT, VoteStance.SUPPORT),
        (VoteStance.SUPPORT, VoteAction.SUPPORT, VoteStance.SUPPORT),
        (None, VoteAction.CONTEST, VoteStance.CONTEST),
        (VoteStance.SUPPORT, VoteAction.CONTEST, VoteStance.CONTEST),
        (VoteStance.SUPPORT, VoteAction.REMOVE_SUPPORT, None),
        (None, VoteAction.REMOVE_SUPPORT, None),
        (VoteStance.CONTEST, VoteAction.REMOVE_SUPPORT, VoteStance.CONTEST),
        (VoteStance.CONTEST, VoteAction.REMOVE_CONTEST, None),
        (None, VoteAction.REMOVE_CONTEST, None),
        (VoteStance.SUPPORT, VoteAction.REMOVE_CONTEST, VoteStance.SUPPORT),
    ])
    def test_transition(self, current, action, expected):
        assert transition(current, action) is expected

    @pytest.mark.parametrize("current", [None, VoteStance.SUPPORT, VoteStance.CONTEST])
    @pytest.mark.parametrize("action", [VoteAction.REMOVE_SUPPORT, VoteAction.REMOVE_CONTEST])
    def test_removal_is_idempotent(self, current, action):
        once = transition(current, action)
        assert transition(once, action) is once


class TestVotingService:

    def test_support_then_contest_moves_user(self, db, alice, bob, make_rule):
        rule = make_rule(alice)
        voting = VotingService(db)

        supported = voting.support(rule.id, bob)
        assert supported.supported_by == ["bob"]
        assert supported.contested_by == []

        contested = voting.contest(rule.id, bob)
        assert contested.supported_by == []
        assert contested.contested_by == ["bob"]

        assert db.query(RuleVote).filter(RuleVote.rule_id == rule.id).count() == 1

    def test_creator_may_vote(self, db, alice, make_rule):
        rule = make_rule(alice)
        assert VotingService(db).support(rule.id, alice).supported_by == ["alice"]

    def test_users_vote_independently(self, db, alice, bob, admin, make_rule):
        rule = make_rule(alice)
        voting = VotingService(db)
        voting.support(rule.id, alice)
        voting.contest(rule.id, bob)
        result = voting.support(rule.id, admin)

        assert result.supported_by == ["alice", "root"]
        assert result.contested_by == ["bob"]

    def test_remove_without_vote_is_noop(self, db, alice, bob, make_rule):
        rule = make_rule(alice)
        voting = VotingService(db)
        voting.contest(rule.id, bob)

        result = voting.remove_support(rule.id, bob)
        assert result.contested_by == ["bob"]

        voting.remove_contest(rule.id, bob)
        twice = voting.remove_contest(rule.id, bob)
        assert twice.contested_by == []
        assert twice.supported_by == []

    def test_mutual_exclusion_after_any_sequence(self, db, alice, bob, make_rule):
        rule = make_rule(alice)
        voting = VotingService(db)
        rng = random.Random(42)
        actions = list(VoteAction)

        for _ in range(60):
            user = rng.choice([alice, bob])
            result = voting.vote(rule.id, rng.choice(actions), user)
            assert not set(result.supported_by) & set(result.contested_by)

    def test_all_pairs_of_actions(self, db, alice, bob, make_rule):
        voting = VotingService(db)
        for first, second in itertools.product(VoteAction, repeat=2):
            rule = make_rule(alice)
            voting.vote(rule.id, first, bob)
            result = voting.vote(rule.id, second, bob)
            expected = transition(transition(None, first), second)
            assert ("bob" in result.supported_by) == (expected is VoteStance.SUPPORT)
            assert ("bob" in result.contested_by) == (expected is VoteStance.CONTEST)

    def test_vote_on_deleted_rule(self, db, alice, bob, make_rule):
        rule = make_rule(alice)
        RuleService(db).delete_rule(rule.id, alice)
        with pytest.raises(InvalidStateError):
            VotingService(db).support(rule.id, bob)

    def test_vote_on_unknown_rule(self, db, bob):
        with pytest.raises(NotFoundError):
            VotingService(db).contest(404, bob)

    def test_supported_and_contested_filters(self, db, alice, bob, make_rule):
        supported = make_rule(alice)
        contested = make_rule(alice)
        make_rule(alice)
        voting = VotingService(db)
        voting.support(supported.id, bob)
        voting.contest(contested.id, bob)

        rules = RuleService(db)
        assert [r.id for r in rules.list_rules(RuleFilter(supported_by="bob"))] == [supported.id]
        assert [r.id for r in rules.list_rules(RuleFilter(contested_by="bob"))] == [contested.id]
        assert rules.list_rules(RuleFilter(supported_by="alice")) == []
