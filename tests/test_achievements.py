"""Tests for achievement evaluation, streaks, counters, replay and catalog loading."""

import json

import pytest

from quarter_engine.achievements.catalog import ACHIEVEMENTS, custom, load_catalog, sustained, threshold
from quarter_engine.achievements.engine import AchievementEngine
from quarter_engine.core.errors import ConfigurationError
from quarter_engine.models.achievements import (
    Achievement,
    AchievementCategory,
    AchievementProgress,
    AchievementTier,
)


def _make_catalog():
    return [
        Achievement(id="profit", name="Profit", description="", category=AchievementCategory.FINANCE,
                    tier=AchievementTier.BRONZE, requirements=[threshold("net_income", ">", 0)]),
        Achievement(id="streak", name="Streak", description="", category=AchievementCategory.FINANCE,
                    tier=AchievementTier.GOLD, requirements=[sustained("net_income", ">", 0, 3)]),
        Achievement(id="borrower", name="Borrower", description="", category=AchievementCategory.FINANCE,
                    tier=AchievementTier.SILVER, requirements=[custom("loans_taken", ">=", 2)]),
        Achievement(id="loss", name="Loss", description="", category=AchievementCategory.RESULTS,
                    tier=AchievementTier.INFAMY, requirements=[threshold("net_income", "<=", -10)]),
        Achievement(id="secret", name="Secret", description="", category=AchievementCategory.SECRET,
                    tier=AchievementTier.SECRET, hidden=True,
                    requirements=[threshold("net_income", ">=", 1000), threshold("headcount", "<=", 5)]),
    ]


def _run(engine, rounds, team_id="team-a"):
    progress = AchievementProgress(team_id=team_id)
    awarded = []
    for round_number, (metrics, counters) in enumerate(rounds, start=1):
        progress, new = engine.evaluate(progress, metrics, counters, round_number)
        awarded.append([a.achievement_id for a in new])
    return progress, awarded


class TestEvaluation:
    def setup_method(self):
        self.engine = AchievementEngine(_make_catalog())

    def test_awarded_once(self):
        progress, awarded = _run(self.engine, [({"net_income": 5}, {}), ({"net_income": 5}, {})])
        assert awarded == [["profit"], []]
        assert progress.awarded_ids == ["profit"]

    def test_same_round_is_a_no_op(self):
        progress, _ = self.engine.evaluate(AchievementProgress(team_id="team-a"), {"net_income": 5}, {}, 1)
        again, new = self.engine.evaluate(progress, {"net_income": 5}, {"loans_taken": 5}, 1)
        assert new == []
        assert again == progress

    def test_input_progress_not_mutated(self):
        progress = AchievementProgress(team_id="team-a")
        self.engine.evaluate(progress, {"net_income": 5}, {"loans_taken": 1}, 1)
        assert progress.awarded == []
        assert progress.counters == {}
        assert progress.last_round == 0

    def test_never_revoked(self):
        progress, awarded = _run(self.engine, [({"net_income": 5}, {}), ({"net_income": -50}, {})])
        assert progress.awarded_ids == ["profit", "loss"]
        assert awarded[1] == ["loss"]

    def test_sustained_resets_on_break(self):
        history = [({"net_income": 1}, {})] * 2 + [({"net_income": -1}, {})] + [({"net_income": 1}, {})] * 2
        progress, awarded = _run(self.engine, history)
        assert "streak" not in progress.awarded_ids
        assert progress.sustained["net_income>0"] == 2
        progress, new = self.engine.evaluate(progress, {"net_income": 1}, {}, 6)
        assert [a.achievement_id for a in new] == ["streak"]
        assert new[0].round_number == 6

    def test_custom_counters_accumulate(self):
        progress, awarded = _run(self.engine, [
            ({"net_income": 0}, {"loans_taken": 1}),
            ({"net_income": 0}, {"loans_taken": 1}),
        ])
        assert awarded == [[], ["borrower"]]
        assert progress.counters["loans_taken"] == 2

    def test_all_requirements_must_hold(self):
        _, awarded = _run(self.engine, [({"net_income": 5000}, {})])
        assert "secret" not in awarded[0]
        _, awarded = _run(self.engine, [({"net_income": 5000, "headcount": 3}, {})])
        assert "secret" in awarded[0]

    def test_infamy_costs_points(self):
        progress, _ = _run(self.engine, [({"net_income": 5}, {}), ({"net_income": -50}, {})])
        assert progress.score == 10 - 25
        assert progress.category_totals() == {"finance": 10, "results": -25}

    def test_missing_metric_never_satisfies(self):
        _, awarded = _run(self.engine, [({}, {})])
        assert awarded == [[]]

    def test_unknown_operator(self):
        bad = Achievement(id="bad", name="Bad", description="", category=AchievementCategory.NEWS,
                          tier=AchievementTier.BRONZE, requirements=[threshold("x", "~", 1)])
        with pytest.raises(ValueError):
            AchievementEngine([bad]).evaluate(AchievementProgress(team_id="t"), {"x": 1}, {}, 1)


class TestReplay:
    def test_replay_matches_incremental(self):
        engine = AchievementEngine(_make_catalog())
        rounds = [
            ({"net_income": 1}, {"loans_taken": 1}),
            ({"net_income": 1}, {}),
            ({"net_income": -20}, {"loans_taken": 1}),
            ({"net_income": 1}, {}),
            ({"net_income": 1}, {}),
            ({"net_income": 1}, {}),
        ]
        incremental, _ = _run(engine, rounds)
        history = [(i, metrics, counters) for i, (metrics, counters) in enumerate(rounds, start=1)]
        assert engine.replay("team-a", reversed(history)) == incremental

    def test_default_catalog_replay(self):
        engine = AchievementEngine()
        rounds = [({"net_income": 1, "overall_rank": 1, "revenue": 2e8}, {"tool:route_comparison": 1})] * 4
        incremental, _ = _run(engine, rounds)
        history = [(i, m, c) for i, (m, c) in enumerate(rounds, start=1)]
        assert engine.replay("team-a", history) == incremental


class TestDefaultCatalog:
    def test_ids_are_unique(self):
        ids = [a.id for a in ACHIEVEMENTS]
        assert len(ids) == len(set(ids))

    def test_hidden_entries_not_visible(self):
        engine = AchievementEngine()
        visible = {a.id for a in engine.visible()}
        assert "skeleton_crew" not in visible
        assert "first_profit" in visible

    def test_first_profit(self):
        progress, new = AchievementEngine().evaluate(
            AchievementProgress(team_id="team-a"), {"net_income": 1.0}, {}, 1,
        )
        assert "first_profit" in [a.achievement_id for a in new]

    def test_infamy_entries_are_negative(self):
        infamy = [a for a in ACHIEVEMENTS if a.tier == AchievementTier.INFAMY]
        assert infamy
        assert all(a.points < 0 for a in infamy)

    def test_leaderboard(self):
        board = AchievementEngine.leaderboard([
            AchievementProgress(team_id="team-b"),
            AchievementProgress(team_id="team-a"),
        ])
        assert board == [("team-a", 0), ("team-b", 0)]


class TestCatalogLoading:
    def test_load_valid_catalog(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps([a.model_dump(mode="json") for a in _make_catalog()]))
        loaded = load_catalog(path)
        assert [a.id for a in loaded] == ["profit", "streak", "borrower", "loss", "secret"]

    def test_invalid_entry(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps([{"id": "broken"}]))
        with pytest.raises(ConfigurationError):
            load_catalog(path)

    def test_bad_json(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError):
            load_catalog(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_catalog(tmp_path / "nope.json")
