"""Unit tests for Achievement System (habit_journey/gamification/achievement_system.py)"""
import json
import pytest
from datetime import date, datetime, timezone

from habit_journey.exceptions import ConfigurationError
from habit_journey.gamification.achievement_system import (
    DEFAULT_CATALOG,
    calculate_achievement_progress,
    check_and_award_achievements,
    evaluate_achievements,
    get_user_achievements,
    is_criteria_met,
    load_achievement_catalog,
)
from habit_journey.models.achievement import (
    AchievementDefinition,
    AchievementStats,
    AchievementUnlock,
    CriteriaType,
    UnlockCriteria,
)
from habit_journey.models.xp import TransactionType, XPLedger


TODAY = date(2024, 3, 6)
UNLOCKED_AT = datetime(2024, 3, 6, 12, 0, tzinfo=timezone.utc)


def _definition(achievement_id, criteria_type, value, xp_reward=0):
    return AchievementDefinition(
        id=achievement_id,
        name=achievement_id.replace("_", " ").title(),
        xp_reward=xp_reward,
        unlock_criteria=UnlockCriteria(type=criteria_type, value=value),
    )


# ============================================================================
# Criteria Tests
# ============================================================================

@pytest.mark.parametrize("criteria_type,stats,expected", [
    (CriteriaType.HABIT_COMPLETIONS, AchievementStats(habit_completions=5), True),
    (CriteriaType.HABIT_COMPLETIONS, AchievementStats(habit_completions=4), False),
    (CriteriaType.STREAK_DAYS, AchievementStats(current_streak=5), True),
    (CriteriaType.STREAK_DAYS, AchievementStats(current_streak=2), False),
    (CriteriaType.XP_MILESTONE, AchievementStats(total_xp=5), True),
    (CriteriaType.GOAL_COMPLETION, AchievementStats(completed_goals=5), True),
    (CriteriaType.GOAL_COMPLETION, AchievementStats(completed_goals=0), False),
])
def test_is_criteria_met(criteria_type, stats, expected):
    assert is_criteria_met(UnlockCriteria(type=criteria_type, value=5), stats) is expected


def test_level_completion_never_unlocks():
    stats = AchievementStats(habit_completions=999, current_streak=999, total_xp=99999, completed_goals=99)

    assert is_criteria_met(UnlockCriteria(type=CriteriaType.LEVEL_COMPLETION, value=1), stats) is False


def test_evaluate_skips_already_unlocked():
    definitions = [
        _definition("first_habit", CriteriaType.HABIT_COMPLETIONS, 1),
        _definition("ten_habits", CriteriaType.HABIT_COMPLETIONS, 10),
        _definition("streak_3", CriteriaType.STREAK_DAYS, 3),
    ]
    stats = AchievementStats(habit_completions=12, current_streak=1)

    result = evaluate_achievements(stats, definitions, unlocked_ids={"first_habit"})

    assert [d.id for d in result] == ["ten_habits"]


# ============================================================================
# Fixed-point Award Tests
# ============================================================================

def test_award_unlocks_and_grants_xp():
    ledger = XPLedger(user_id="u1", total_xp=20)
    unlocks = []
    definitions = [_definition("first_habit", CriteriaType.HABIT_COMPLETIONS, 1, xp_reward=10)]

    result = check_and_award_achievements(
        ledger, AchievementStats(habit_completions=1), definitions, unlocks, TODAY, UNLOCKED_AT
    )

    assert [d.id for d in result["unlocked"]] == ["first_habit"]
    assert result["xp_awarded"] == 10
    assert ledger.total_xp == 30
    assert unlocks[0].achievement_id == "first_habit"
    assert unlocks[0].unlocked_at == UNLOCKED_AT
    assert result["transactions"][0].transaction_type == TransactionType.ACHIEVEMENT_BONUS


def test_reward_xp_unlocks_xp_milestone_in_same_call():
    """Test an achievement's XP reward crossing an xp_milestone unlocks both"""
    ledger = XPLedger(user_id="u1", total_xp=60)
    unlocks = []
    definitions = [
        _definition("xp_100", CriteriaType.XP_MILESTONE, 100, xp_reward=5),
        _definition("first_habit", CriteriaType.HABIT_COMPLETIONS, 1, xp_reward=50),
    ]

    result = check_and_award_achievements(
        ledger, AchievementStats(habit_completions=1, total_xp=60), definitions, unlocks, TODAY, UNLOCKED_AT
    )

    assert {d.id for d in result["unlocked"]} == {"first_habit", "xp_100"}
    assert [d.id for d in result["unlocked"]] == ["first_habit", "xp_100"]
    # 60 + 50 = 110 (level 2, +50 bonus) = 160, + 5 = 165
    assert ledger.total_xp == 165
    assert result["xp_awarded"] == 105


def test_rerun_does_not_unlock_again():
    ledger = XPLedger(user_id="u1")
    unlocks = []
    definitions = [_definition("first_habit", CriteriaType.HABIT_COMPLETIONS, 1, xp_reward=10)]
    stats = AchievementStats(habit_completions=3)

    check_and_award_achievements(ledger, stats, definitions, unlocks, TODAY, UNLOCKED_AT)
    second = check_and_award_achievements(ledger, stats, definitions, unlocks, TODAY, UNLOCKED_AT)

    assert second["unlocked"] == []
    assert second["xp_awarded"] == 0
    assert len(unlocks) == 1
    assert ledger.total_xp == 10


def test_nothing_to_unlock():
    ledger = XPLedger(user_id="u1")

    result = check_and_award_achievements(
        ledger, AchievementStats(), DEFAULT_CATALOG.achievements, [], TODAY, UNLOCKED_AT
    )

    assert result == {"unlocked": [], "xp_awarded": 0, "transactions": []}


# ============================================================================
# Progress & Summary Tests
# ============================================================================

def test_calculate_achievement_progress():
    definition = _definition("streak_7", CriteriaType.STREAK_DAYS, 7)

    progress = calculate_achievement_progress(definition, AchievementStats(current_streak=3))

    assert progress == {"current": 3, "required": 7, "percentage": 43, "description": "3/7"}


def test_progress_capped_at_100():
    definition = _definition("first_habit", CriteriaType.HABIT_COMPLETIONS, 1)

    progress = calculate_achievement_progress(definition, AchievementStats(habit_completions=40))

    assert progress["percentage"] == 100


def test_level_completion_progress_is_zero():
    definition = _definition("foundation_master", CriteriaType.LEVEL_COMPLETION, 1)

    assert calculate_achievement_progress(definition, AchievementStats())["percentage"] == 0


def test_get_user_achievements_summary():
    definitions = DEFAULT_CATALOG.achievements
    unlocks = [
        AchievementUnlock(user_id="u1", achievement_id="first_habit", xp_reward=10,
                          unlocked_at=datetime(2024, 3, 1, tzinfo=timezone.utc)),
        AchievementUnlock(user_id="u1", achievement_id="week_warrior", xp_reward=50,
                          unlocked_at=datetime(2024, 3, 5, tzinfo=timezone.utc)),
    ]
    stats = AchievementStats(habit_completions=40, current_streak=7, total_xp=500)

    result = get_user_achievements(definitions, unlocks, stats, include_locked=True)

    assert result["total_unlocked"] == 2
    assert result["total_achievements"] == 6
    assert result["total_xp_from_achievements"] == 60
    assert [a["achievement_id"] for a in result["unlocked"]] == ["week_warrior", "first_habit"]
    assert result["locked"][0]["achievement_id"] == "habit_crusher"
    assert result["locked"][0]["progress"]["percentage"] == 80


def test_summary_without_locked():
    result = get_user_achievements(DEFAULT_CATALOG.achievements, [], AchievementStats())

    assert "locked" not in result
    assert result["total_unlocked"] == 0


# ============================================================================
# Catalog Tests
# ============================================================================

def test_default_catalog_contents():
    ids = [a.id for a in DEFAULT_CATALOG.achievements]

    assert ids == [
        "first_habit", "week_warrior", "foundation_master",
        "habit_crusher", "streak_legend", "goal_achiever",
    ]


def test_load_default_catalog_without_path(monkeypatch):
    monkeypatch.setattr("habit_journey.config.ACHIEVEMENT_CATALOG_PATH", None)

    assert load_achievement_catalog() is DEFAULT_CATALOG


def test_load_catalog_from_file(tmp_path):
    path = tmp_path / "achievements.json"
    path.write_text(json.dumps({
        "version": 2,
        "achievements": [
            {"id": "xp_1000", "name": "Thousand", "xp_reward": 25,
             "unlock_criteria": {"type": "xp_milestone", "value": 1000}},
        ],
    }))

    catalog = load_achievement_catalog(str(path))

    assert catalog.version == 2
    assert catalog.achievements[0].unlock_criteria.type == CriteriaType.XP_MILESTONE


def test_load_catalog_rejects_duplicate_ids(tmp_path):
    entry = {"id": "dup", "name": "Dup", "unlock_criteria": {"type": "streak_days", "value": 1}}
    path = tmp_path / "achievements.json"
    path.write_text(json.dumps({"version": 1, "achievements": [entry, entry]}))

    with pytest.raises(ConfigurationError):
        load_achievement_catalog(str(path))


def test_load_catalog_missing_file(tmp_path):
    with pytest.raises(ConfigurationError) as exc_info:
        load_achievement_catalog(str(tmp_path / "missing.json"))

    assert exc_info.value.config_key == "ACHIEVEMENT_CATALOG_PATH"
