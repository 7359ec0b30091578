import datetime

import pytest
from sqlmodel import Session, select

from models.activity import ActivityEvent, ActivityType
from models.challenge import (
    Badge,
    Challenge,
    ChallengeGoal,
    ChallengeParticipant,
    ChallengeReward,
    ChallengeType,
    ClaimedReward,
    GoalType,
    RewardType,
    UserBadge,
)
from models.types import utcnow
from services.errors import Conflict, Forbidden, NotFound, ValidationError
from services.progress import (
    claim_reward,
    create_team,
    increment_progress,
    join_challenge,
    join_team,
    leave_challenge,
    leave_team,
    progress_increment,
    set_progress,
    team_progress,
    update_progress,
)


def _goal(session: Session, challenge_id: str) -> ChallengeGoal:
    return session.exec(
        select(ChallengeGoal).where(ChallengeGoal.challenge_id == challenge_id)
    ).one()


def _reward(session: Session, challenge_id: str) -> ChallengeReward:
    return session.exec(
        select(ChallengeReward).where(ChallengeReward.challenge_id == challenge_id)
    ).one()


def _events(session: Session, activity_type: ActivityType) -> list[ActivityEvent]:
    return session.exec(
        select(ActivityEvent).where(ActivityEvent.activity_type == activity_type)
    ).all()


class TestJoinAndLeave:
    def test_join_creates_participant_and_counts(
        self, test_session: Session, make_challenge, alice
    ):
        challenge = make_challenge()

        participant = join_challenge(test_session, user=alice, challenge_id=challenge.id)

        assert participant.progress == 0
        assert participant.completed is False
        test_session.refresh(challenge)
        assert challenge.participant_count == 1
        assert len(_events(test_session, ActivityType.challenge_joined)) == 1

    def test_join_twice_conflicts(self, test_session: Session, make_challenge, alice):
        challenge = make_challenge()
        join_challenge(test_session, user=alice, challenge_id=challenge.id)

        with pytest.raises(Conflict):
            join_challenge(test_session, user=alice, challenge_id=challenge.id)

    def test_join_unknown_challenge(self, test_session: Session, alice):
        with pytest.raises(NotFound):
            join_challenge(test_session, user=alice, challenge_id="missing")

    def test_join_finished_challenge_is_forbidden(
        self, test_session: Session, make_challenge, alice
    ):
        now = utcnow()
        challenge = make_challenge(
            start=now - datetime.timedelta(days=10),
            end=now - datetime.timedelta(days=1),
        )

        with pytest.raises(Forbidden, match="completed"):
            join_challenge(test_session, user=alice, challenge_id=challenge.id)

    def test_competitive_challenge_stops_at_max(
        self, test_session: Session, make_challenge, alice, bob, carol
    ):
        challenge = make_challenge(type=ChallengeType.competitive, max_participants=2)
        join_challenge(test_session, user=alice, challenge_id=challenge.id)
        join_challenge(test_session, user=bob, challenge_id=challenge.id)

        with pytest.raises(Forbidden, match="maximum"):
            join_challenge(test_session, user=carol, challenge_id=challenge.id)

        test_session.refresh(challenge)
        assert challenge.participant_count == 2

    def test_stale_capacity_read_cannot_take_a_taken_seat(
        self, test_session: Session, make_challenge, alice, bob, mocker
    ):
        challenge = make_challenge(type=ChallengeType.competitive, max_participants=1)
        join_challenge(test_session, user=bob, challenge_id=challenge.id)
        # alice read the challenge before bob took the last seat
        mocker.patch.object(Challenge, "is_full", return_value=False)

        with pytest.raises(Forbidden, match="maximum"):
            join_challenge(test_session, user=alice, challenge_id=challenge.id)

        assert test_session.get(ChallengeParticipant, (challenge.id, alice.id)) is None
        test_session.refresh(challenge)
        assert challenge.participant_count == 1

    def test_failed_insert_gives_the_seat_back(
        self, test_session: Session, make_challenge, alice, mocker
    ):
        challenge_id = make_challenge(
            type=ChallengeType.competitive, max_participants=5
        ).id
        join_challenge(test_session, user=alice, challenge_id=challenge_id)
        # a concurrent duplicate join slips past the membership check
        mocker.patch("services.progress._participant", return_value=None)
        test_session.expunge(
            test_session.get(ChallengeParticipant, (challenge_id, alice.id))
        )

        with pytest.raises(Conflict):
            join_challenge(test_session, user=alice, challenge_id=challenge_id)

        assert test_session.get(Challenge, challenge_id).participant_count == 1

    def test_leave_decrements_counter(
        self, test_session: Session, make_challenge, alice
    ):
        challenge = make_challenge()
        join_challenge(test_session, user=alice, challenge_id=challenge.id)

        leave_challenge(test_session, user=alice, challenge_id=challenge.id)

        test_session.refresh(challenge)
        assert challenge.participant_count == 0
        assert test_session.get(ChallengeParticipant, (challenge.id, alice.id)) is None

    def test_leave_without_joining_is_not_found(
        self, test_session: Session, make_challenge, alice
    ):
        challenge = make_challenge()
        with pytest.raises(NotFound):
            leave_challenge(test_session, user=alice, challenge_id=challenge.id)

    def test_counter_never_goes_negative(
        self, test_session: Session, make_challenge, alice
    ):
        challenge = make_challenge()
        join_challenge(test_session, user=alice, challenge_id=challenge.id)
        # counter drifted below the real number of participants
        challenge.participant_count = 0
        test_session.add(challenge)
        test_session.commit()

        leave_challenge(test_session, user=alice, challenge_id=challenge.id)

        test_session.refresh(challenge)
        assert challenge.participant_count == 0


class TestProgress:
    @pytest.mark.parametrize(
        "value", [-1, 101, 50.5, True, "50", None, float("nan"), float("inf")]
    )
    def test_out_of_range_progress_is_rejected(
        self, test_session: Session, make_challenge, alice, value
    ):
        challenge = make_challenge()
        join_challenge(test_session, user=alice, challenge_id=challenge.id)

        with pytest.raises(ValidationError) as exc:
            update_progress(
                test_session, user=alice, challenge_id=challenge.id, progress=value
            )
        assert exc.value.errors[0].path == "progress"

    def test_competitive_challenges_are_range_checked_too(
        self, test_session: Session, make_challenge, alice
    ):
        challenge = make_challenge(type=ChallengeType.competitive, max_participants=5)
        join_challenge(test_session, user=alice, challenge_id=challenge.id)

        with pytest.raises(ValidationError):
            update_progress(
                test_session, user=alice, challenge_id=challenge.id, progress=150
            )

    def test_update_requires_participation(
        self, test_session: Session, make_challenge, alice
    ):
        challenge = make_challenge()
        with pytest.raises(NotFound):
            update_progress(
                test_session, user=alice, challenge_id=challenge.id, progress=10
            )

    def test_completion_is_reported_once(
        self, test_session: Session, make_challenge, alice
    ):
        challenge = make_challenge()
        join_challenge(test_session, user=alice, challenge_id=challenge.id)

        first = update_progress(
            test_session, user=alice, challenge_id=challenge.id, progress=100
        )
        again = update_progress(
            test_session, user=alice, challenge_id=challenge.id, progress=100
        )

        assert first.completed_now is True
        assert again.completed_now is False
        assert len(_events(test_session, ActivityType.challenge_completed)) == 1
        participant = test_session.get(ChallengeParticipant, (challenge.id, alice.id))
        assert participant.completed is True

    def test_progress_can_decrease(self, test_session: Session, make_challenge, alice):
        challenge = make_challenge()
        join_challenge(test_session, user=alice, challenge_id=challenge.id)
        update_progress(test_session, user=alice, challenge_id=challenge.id, progress=60)

        result = update_progress(
            test_session, user=alice, challenge_id=challenge.id, progress=40
        )

        assert (result.previous, result.current) == (60, 40)

    def test_stale_writer_gets_conflict(
        self, test_session: Session, make_challenge, alice
    ):
        challenge = make_challenge()
        participant = join_challenge(
            test_session, user=alice, challenge_id=challenge.id
        )
        test_session.refresh(participant)
        stale = ChallengeParticipant(**participant.model_dump())

        update_progress(test_session, user=alice, challenge_id=challenge.id, progress=30)

        with pytest.raises(Conflict):
            set_progress(test_session, stale, 50)
        test_session.expire_all()
        fresh = test_session.get(ChallengeParticipant, (challenge.id, alice.id))
        assert fresh.progress == 30


class TestIncrement:
    @pytest.mark.parametrize(
        "goal_type, target, expected",
        [
            (GoalType.complete_games, 5, 20),
            (GoalType.complete_games, 3, 33),
            (GoalType.complete_games, 8, 13),
            (GoalType.complete_games, 1000, 1),
            (GoalType.score_points, 400, 3),
            (GoalType.score_points, 100, 10),
            (GoalType.play_time, 50, 10),
            (GoalType.reach_level, 2, 10),
        ],
    )
    def test_progress_increment(self, goal_type, target, expected):
        goal = ChallengeGoal(challenge_id="c", type=goal_type, target=target)
        assert progress_increment(goal) == expected

    def test_five_increments_complete_and_reward_is_claimed_once(
        self, test_session: Session, make_challenge, alice
    ):
        challenge = make_challenge(target=5)
        goal = _goal(test_session, challenge.id)
        reward = _reward(test_session, challenge.id)
        join_challenge(test_session, user=alice, challenge_id=challenge.id)

        results = [
            increment_progress(
                test_session, user=alice, challenge_id=challenge.id, goal_id=goal.id
            )
            for _ in range(5)
        ]

        assert [r.current for r in results] == [20, 40, 60, 80, 100]
        assert [r.completed_now for r in results] == [False] * 4 + [True]

        claim = claim_reward(
            test_session, user=alice, challenge_id=challenge.id, reward_id=reward.id
        )
        assert claim.reward_id == reward.id
        with pytest.raises(Conflict):
            claim_reward(
                test_session, user=alice, challenge_id=challenge.id, reward_id=reward.id
            )
        assert len(test_session.exec(select(ClaimedReward)).all()) == 1

    def test_increment_is_clamped(self, test_session: Session, make_challenge, alice):
        challenge = make_challenge(target=3)
        goal = _goal(test_session, challenge.id)
        join_challenge(test_session, user=alice, challenge_id=challenge.id)

        up = increment_progress(
            test_session, user=alice, challenge_id=challenge.id, goal_id=goal.id, steps=4
        )
        down = increment_progress(
            test_session,
            user=alice,
            challenge_id=challenge.id,
            goal_id=goal.id,
            steps=-10,
        )

        assert up.current == 100
        assert down.current == 0

    def test_goal_of_another_challenge(
        self, test_session: Session, make_challenge, alice
    ):
        challenge = make_challenge()
        other = make_challenge()
        join_challenge(test_session, user=alice, challenge_id=challenge.id)

        with pytest.raises(NotFound):
            increment_progress(
                test_session,
                user=alice,
                challenge_id=challenge.id,
                goal_id=_goal(test_session, other.id).id,
            )


class TestClaimReward:
    def test_claim_before_completion_is_forbidden(
        self, test_session: Session, make_challenge, alice
    ):
        challenge = make_challenge()
        reward = _reward(test_session, challenge.id)
        join_challenge(test_session, user=alice, challenge_id=challenge.id)
        update_progress(test_session, user=alice, challenge_id=challenge.id, progress=99)

        with pytest.raises(Forbidden):
            claim_reward(
                test_session, user=alice, challenge_id=challenge.id, reward_id=reward.id
            )

    def test_claim_reward_of_another_challenge(
        self, test_session: Session, make_challenge, alice
    ):
        challenge = make_challenge()
        other = make_challenge()
        join_challenge(test_session, user=alice, challenge_id=challenge.id)
        update_progress(
            test_session, user=alice, challenge_id=challenge.id, progress=100
        )

        with pytest.raises(NotFound):
            claim_reward(
                test_session,
                user=alice,
                challenge_id=challenge.id,
                reward_id=_reward(test_session, other.id).id,
            )

    def test_claim_requires_participation(
        self, test_session: Session, make_challenge, alice
    ):
        challenge = make_challenge()
        with pytest.raises(NotFound):
            claim_reward(
                test_session,
                user=alice,
                challenge_id=challenge.id,
                reward_id=_reward(test_session, challenge.id).id,
            )

    def test_badge_reward_issues_badge(
        self, test_session: Session, make_challenge, alice
    ):
        badge = Badge(name="Marathoner", description="Ran the whole marathon")
        test_session.add(badge)
        test_session.commit()
        challenge = make_challenge(reward_type=RewardType.badge, badge_id=badge.id)
        join_challenge(test_session, user=alice, challenge_id=challenge.id)
        update_progress(
            test_session, user=alice, challenge_id=challenge.id, progress=100
        )

        claim_reward(
            test_session,
            user=alice,
            challenge_id=challenge.id,
            reward_id=_reward(test_session, challenge.id).id,
        )

        issued = test_session.exec(select(UserBadge)).all()
        assert [(b.user_id, b.badge_id) for b in issued] == [(alice.id, badge.id)]
        assert len(_events(test_session, ActivityType.reward_claimed)) == 1


class TestTeams:
    def test_create_team_moves_creator_in(
        self, test_session: Session, make_challenge, alice
    ):
        challenge = make_challenge()
        join_challenge(test_session, user=alice, challenge_id=challenge.id)

        team = create_team(
            test_session, user=alice, challenge_id=challenge.id, name="Red Team"
        )

        participant = test_session.get(ChallengeParticipant, (challenge.id, alice.id))
        assert participant.team_id == team.id

    def test_only_participants_create_teams(
        self, test_session: Session, make_challenge, alice
    ):
        challenge = make_challenge()
        with pytest.raises(Forbidden):
            create_team(
                test_session, user=alice, challenge_id=challenge.id, name="Red Team"
            )

    def test_team_name_rules(self, test_session: Session, make_challenge, alice, bob):
        challenge = make_challenge()
        join_challenge(test_session, user=alice, challenge_id=challenge.id)
        join_challenge(test_session, user=bob, challenge_id=challenge.id)

        with pytest.raises(ValidationError):
            create_team(test_session, user=alice, challenge_id=challenge.id, name="R!")

        create_team(test_session, user=alice, challenge_id=challenge.id, name="Red Team")
        with pytest.raises(Conflict):
            create_team(
                test_session, user=bob, challenge_id=challenge.id, name="Red Team"
            )

    def test_join_leave_and_team_progress(
        self, test_session: Session, make_challenge, alice, bob
    ):
        challenge = make_challenge()
        for user in (alice, bob):
            join_challenge(test_session, user=user, challenge_id=challenge.id)
        team = create_team(
            test_session, user=alice, challenge_id=challenge.id, name="Blue_Team"
        )
        join_team(test_session, user=bob, challenge_id=challenge.id, team_id=team.id)
        update_progress(test_session, user=alice, challenge_id=challenge.id, progress=80)
        update_progress(test_session, user=bob, challenge_id=challenge.id, progress=40)

        assert team_progress(test_session, challenge.id) == [
            {"id": team.id, "name": "Blue_Team", "members": 2, "progress": 60}
        ]

        with pytest.raises(Conflict):
            join_team(
                test_session, user=bob, challenge_id=challenge.id, team_id=team.id
            )
        leave_team(test_session, user=bob, challenge_id=challenge.id)
        with pytest.raises(NotFound):
            leave_team(test_session, user=bob, challenge_id=challenge.id)
        assert team_progress(test_session, challenge.id)[0]["members"] == 1
