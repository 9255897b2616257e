import unittest

from application.thresholds import ThresholdStore, resolve_thresholds, winning_team
from domain.errors import ThresholdConfigError
from domain.models import (
    DEFAULT_LOSING_THRESHOLDS,
    DEFAULT_WINNING_THRESHOLDS,
    RoleKind,
    Standing,
    Team,
    TeamThresholds,
    ThresholdSet,
)

W = ThresholdSet(whitelist=1000, moolalist=500, free_mint=200)
L = ThresholdSet(whitelist=800, moolalist=400, free_mint=150)


class RecordingSettingsRepository:
    def __init__(self, stored=None):
        self.stored = stored
        self.saved = []

    def load(self):
        return self.stored

    def save(self, thresholds):
        self.saved.append(thresholds)
        self.stored = thresholds


class ResolveThresholdsTests(unittest.TestCase):
    def test_leading_team_gets_winning_set(self):
        resolved = resolve_thresholds(200, 100, W, L)
        self.assertIs(resolved.winning_team, Team.BULLAS)
        self.assertEqual(resolved.for_team(Team.BULLAS), W)
        self.assertEqual(resolved.for_team(Team.BERAS), L)

        resolved = resolve_thresholds(100, 200, W, L)
        self.assertIs(resolved.winning_team, Team.BERAS)
        self.assertEqual(resolved.for_team(Team.BERAS), W)
        self.assertEqual(resolved.for_team(Team.BULLAS), L)

    def test_tie_goes_to_beras_by_default(self):
        resolved = resolve_thresholds(100, 100, W, L)
        self.assertIs(resolved.winning_team, Team.BERAS)
        self.assertEqual(resolved.for_team(Team.BERAS), W)
        self.assertEqual(resolved.for_team(Team.BULLAS), L)

    def test_tie_winner_is_overridable(self):
        resolved = resolve_thresholds(100, 100, W, L, tie_winner=Team.BULLAS)
        self.assertIs(resolved.winning_team, Team.BULLAS)
        self.assertIs(winning_team(0, 0, Team.BULLAS), Team.BULLAS)
        # Only ties consult the override.
        self.assertIs(winning_team(1, 2, Team.BULLAS), Team.BERAS)

    def test_resolution_is_deterministic(self):
        self.assertEqual(resolve_thresholds(5, 7, W, L), resolve_thresholds(5, 7, W, L))

    def test_malformed_thresholds_are_rejected(self):
        with self.assertRaises(ThresholdConfigError):
            resolve_thresholds(1, 0, ThresholdSet(-1, 500, 200), L)
        with self.assertRaises(ThresholdConfigError):
            resolve_thresholds(1, 0, W, ThresholdSet(800, "400", 150))
        with self.assertRaises(ThresholdConfigError):
            resolve_thresholds(1, 0, W, None)


class ThresholdStoreTests(unittest.TestCase):
    def test_defaults(self):
        store = ThresholdStore()
        self.assertEqual(store.current().winning, DEFAULT_WINNING_THRESHOLDS)
        self.assertEqual(store.current().losing, DEFAULT_LOSING_THRESHOLDS)

    def test_update_swaps_in_new_value_and_persists(self):
        repo = RecordingSettingsRepository()
        store = ThresholdStore(repo)
        before = store.current()

        after = store.update(Standing.WINNING, RoleKind.FREE_MINT, 250)

        self.assertEqual(after.winning.free_mint, 250)
        self.assertEqual(after.losing, before.losing)
        # The old value is untouched so an in-flight run keeps a consistent view.
        self.assertEqual(before.winning.free_mint, 200)
        self.assertIs(store.current(), after)
        self.assertEqual(repo.saved, [after])

    def test_update_rejects_non_positive_minimum(self):
        repo = RecordingSettingsRepository()
        store = ThresholdStore(repo)
        for bad in (0, -10, True):
            with self.assertRaises(ThresholdConfigError):
                store.update(Standing.LOSING, RoleKind.WHITELIST, bad)
        self.assertEqual(repo.saved, [])

    def test_load_prefers_persisted_values(self):
        stored = TeamThresholds(winning=ThresholdSet(10, 20, 30), losing=ThresholdSet(1, 2, 3))
        store = ThresholdStore(RecordingSettingsRepository(stored))
        self.assertEqual(store.load(), stored)
        self.assertEqual(store.current(), stored)

    def test_load_without_stored_values_keeps_defaults(self):
        store = ThresholdStore(RecordingSettingsRepository())
        self.assertEqual(store.load(), TeamThresholds())


if __name__ == "__main__":
    unittest.main()
