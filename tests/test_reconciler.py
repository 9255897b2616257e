import unittest
from decimal import Decimal

from application.reconciler import desired_roles, reconcile, team_totals
from application.thresholds import resolve_thresholds
from domain.models import ALL_BADGES, RoleKind, Team, ThresholdSet, UserAccount

WINNING = ThresholdSet(whitelist=1000, moolalist=500, free_mint=200)
LOSING = ThresholdSet(whitelist=800, moolalist=400, free_mint=150)


def user(discord_id, points, team):
    return UserAccount(discord_id=discord_id, points=Decimal(points), team=team)


class ReconcileTests(unittest.TestCase):
    def setUp(self) -> None:
        # Bullas lead, so bullas use WINNING and beras use LOSING.
        self.resolved = resolve_thresholds(5000, 1000, WINNING, LOSING)

    def test_below_every_threshold_removes_all_badges(self):
        diffs = reconcile([user("1", 10, Team.BULLAS), user("2", 149, Team.BERAS)], self.resolved)
        for diff in diffs:
            self.assertEqual(diff.add, frozenset())
            self.assertEqual(diff.remove, ALL_BADGES)

    def test_above_every_threshold_adds_all_badges(self):
        diffs = reconcile([user("1", 1000, Team.BULLAS), user("2", 5000, Team.BERAS)], self.resolved)
        for diff in diffs:
            self.assertEqual(diff.add, ALL_BADGES)
            self.assertEqual(diff.remove, frozenset())

    def test_winning_member_with_750_points(self):
        self.assertEqual(
            desired_roles(Decimal(750), WINNING),
            {RoleKind.WHITELIST: False, RoleKind.MOOLALIST: True, RoleKind.FREE_MINT: True},
        )
        (diff,) = reconcile([user("1", 750, Team.BULLAS)], self.resolved)
        self.assertEqual(diff.add, {RoleKind.MOOLALIST, RoleKind.FREE_MINT})
        self.assertEqual(diff.remove, {RoleKind.WHITELIST})

    def test_losing_member_with_150_points(self):
        self.assertEqual(
            desired_roles(Decimal(150), LOSING),
            {RoleKind.WHITELIST: False, RoleKind.MOOLALIST: False, RoleKind.FREE_MINT: True},
        )
        (diff,) = reconcile([user("2", 150, Team.BERAS)], self.resolved)
        self.assertEqual(diff.add, {RoleKind.FREE_MINT})
        self.assertEqual(diff.remove, {RoleKind.WHITELIST, RoleKind.MOOLALIST})

    def test_tiers_are_independent(self):
        odd = ThresholdSet(whitelist=100, moolalist=900, free_mint=500)
        resolved = resolve_thresholds(1, 0, odd, odd)
        (diff,) = reconcile([user("1", 100, Team.BULLAS)], resolved)
        self.assertEqual(diff.add, {RoleKind.WHITELIST})

    def test_excluded_and_teamless_members_are_skipped(self):
        members = [
            user("1", 900, Team.BULLAS),
            user("admin", 99999, Team.BULLAS),
            user("3", 900, None),
            user(None, 900, Team.BERAS),
            user("", 900, Team.BERAS),
            user("4", 0, Team.BERAS),
        ]
        diffs = reconcile(members, self.resolved, excluded={"admin"})
        self.assertEqual([d.discord_id for d in diffs], ["1", "4"])

    def test_reconcile_is_idempotent(self):
        members = [user(str(i), i * 97, Team.BULLAS if i % 2 else Team.BERAS) for i in range(20)]
        self.assertEqual(reconcile(members, self.resolved), reconcile(members, self.resolved))

    def test_team_totals_ignore_excluded_and_teamless(self):
        totals = team_totals(
            [
                user("1", 10, Team.BULLAS),
                user("2", 5, Team.BERAS),
                user("3", 100, None),
                user("admin", 1000, Team.BERAS),
            ],
            excluded={"admin"},
        )
        self.assertEqual(totals.bullas, Decimal(10))
        self.assertEqual(totals.beras, Decimal(5))


if __name__ == "__main__":
    unittest.main()
