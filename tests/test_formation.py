"""Tests for multi-pass, multi-seed group formation."""

import numpy as np
import pytest

from conftest import make_index, make_profile, uniform_index
from groupmatch.configs import MatchingConfig
from groupmatch.formation import GroupFormationAlgorithm
from groupmatch.scoring import ScoreCalculator


def profiles_for(ids):
    return [make_profile(pid) for pid in ids]


def clique_scores(ids, score):
    return {(a, b): score for i, a in enumerate(ids) for b in ids[i + 1:]}


@pytest.fixture
def algorithm():
    return GroupFormationAlgorithm(MatchingConfig())


class TestMultiPass:

    def test_compatible_four_form_one_group_at_first_threshold(self, algorithm):
        ids = ["a", "b", "c", "d"]

        result = algorithm.run(profiles_for(ids), uniform_index(ids, 80.0))

        assert len(result.groups) == 1
        group = result.groups[0]
        assert group.member_ids == ids
        assert group.threshold_used == 70
        assert group.average_match_score == 80.0
        assert group.min_match_score == 80.0
        assert result.unmatched == []
        assert result.warnings == ["Threshold 70%: Formed 1 group(s) with 4 participants"]
        assert [t.to_dict() for t in result.threshold_breakdown] == [
            {"threshold": 70, "groups_formed": 1, "participants_matched": 4},
        ]

    def test_groups_fill_to_maximum_and_leave_remainder(self, algorithm):
        ids = [f"p{i}" for i in range(7)]

        result = algorithm.run(profiles_for(ids), uniform_index(ids, 80.0))

        assert [g.size for g in result.groups] == [5]
        assert [p.participant_id for p in result.unmatched] == ["p5", "p6"]
        assert result.warnings[-1] == "2 participant(s) could not be matched even with minimum threshold"

    def test_weaker_cluster_groups_at_lower_threshold(self, algorithm):
        strong = ["a1", "a2", "a3"]
        weak = ["b1", "b2", "b3"]
        scores = clique_scores(strong, 90.0)
        scores.update(clique_scores(weak, 60.0))
        scores.update({(a, b): 10.0 for a in strong for b in weak})

        result = algorithm.run(profiles_for(strong + weak), make_index(scores))

        assert [g.member_ids for g in result.groups] == [strong, weak]
        assert [g.threshold_used for g in result.groups] == [70, 60]
        assert [t.threshold for t in result.threshold_breakdown] == [70, 60]
        assert result.unmatched == []

    def test_fewer_than_minimum_short_circuits(self, algorithm):
        result = algorithm.run(profiles_for(["a", "b"]), uniform_index(["a", "b"], 99.0))

        assert result.groups == []
        assert len(result.unmatched) == 2
        assert result.warnings == ["Not enough participants. Minimum 3 required."]

    def test_no_group_at_any_threshold(self):
        ids = ["a", "b", "c"]
        algorithm = GroupFormationAlgorithm(MatchingConfig(thresholds=[90, 80]))

        result = algorithm.run(profiles_for(ids), uniform_index(ids, 50.0))

        assert result.groups == []
        assert result.warnings == [
            "3 participant(s) could not be matched even with minimum threshold",
            "No groups could be formed with any threshold",
        ]


class TestSeedAttempts:

    def test_best_coverage_attempt_wins(self, algorithm):
        # s bridges both cliques; seeding from s strands d and e
        ids = ["s", "a", "b", "c", "d", "e"]
        scores = {(a, b): 0.0 for i, a in enumerate(ids) for b in ids[i + 1:]}
        scores.update({("s", x): 90.0 for x in ids[1:]})
        scores.update(clique_scores(["a", "b", "c"], 90.0))
        scores[("d", "e")] = 90.0

        groups = algorithm.form_groups_with_threshold(
            profiles_for(ids), make_index(scores), 70, set()
        )

        assert [sorted(g.member_ids) for g in groups] == [["d", "e", "s"], ["a", "b", "c"]]
        assert {g.seed_attempt for g in groups} == {4}

    def test_global_assignments_are_untouched(self, algorithm):
        ids = ["a", "b", "c", "d"]
        assigned = {"d"}

        groups = algorithm.form_groups_with_threshold(
            profiles_for(ids), uniform_index(ids, 80.0), 70, assigned
        )

        assert assigned == {"d"}
        assert groups[0].member_ids == ["a", "b", "c"]

    def test_admission_uses_group_average(self, algorithm):
        scores = clique_scores(["a", "b", "c"], 90.0)
        scores.update({("a", "d"): 90.0, ("b", "d"): 90.0, ("c", "d"): 40.0})
        assigned = set()

        group = algorithm.form_single_group(
            make_profile("a"), profiles_for(["a", "b", "c", "d"]), make_index(scores), 70, assigned
        )

        assert group.member_ids == ["a", "b", "c", "d"]
        assert group.min_match_score == 40.0
        assert assigned == {"a", "b", "c", "d"}

    def test_undersized_group_releases_members(self, algorithm):
        scores = {("a", "b"): 90.0, ("a", "c"): 10.0, ("b", "c"): 10.0}
        assigned = set()

        group = algorithm.form_single_group(
            make_profile("a"), profiles_for(["a", "b", "c"]), make_index(scores), 70, assigned
        )

        assert group is None
        assert assigned == set()


class TestPartitionProperties:

    @pytest.fixture
    def random_pool(self):
        rng = np.random.RandomState(3)
        return [
            make_profile(
                f"p{i:02d}",
                raw=tuple(rng.uniform(-10, 10, size=4).round(1)),
                lifestyle=float(rng.uniform(0, 100)),
                comfort=float(rng.uniform(0, 100)),
            )
            for i in range(17)
        ]

    def test_every_participant_placed_exactly_once(self, algorithm, random_pool):
        index = ScoreCalculator().build_index(random_pool)

        result = algorithm.run(random_pool, index)

        grouped = [pid for g in result.groups for pid in g.member_ids]
        unmatched = [p.participant_id for p in result.unmatched]
        assert sorted(grouped + unmatched) == sorted(p.participant_id for p in random_pool)
        assert len(set(grouped)) == len(grouped)
        assert all(3 <= g.size <= 5 for g in result.groups)
        assert len(unmatched) < 3

    def test_thresholds_never_increase(self, algorithm, random_pool):
        index = ScoreCalculator().build_index(random_pool)

        result = algorithm.run(random_pool, index)

        used = [g.threshold_used for g in result.groups]
        assert used == sorted(used, reverse=True)
        assert sum(t.participants_matched for t in result.threshold_breakdown) == sum(
            g.size for g in result.groups
        )

    def test_runs_are_deterministic(self, algorithm, random_pool):
        index = ScoreCalculator().build_index(random_pool)

        first = algorithm.run(random_pool, index)
        second = algorithm.run(random_pool, index)

        assert [g.member_ids for g in first.groups] == [g.member_ids for g in second.groups]

    def test_member_score_maps_are_symmetric(self, algorithm, random_pool):
        index = ScoreCalculator().build_index(random_pool)

        for group in algorithm.run(random_pool, index).groups:
            for pid in group.member_ids:
                scores = group.scores_for(pid)
                assert set(scores) == set(group.member_ids) - {pid}
                for other, score in scores.items():
                    assert group.scores_for(other)[pid] == score
