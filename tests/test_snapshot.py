import csv
import os
import tempfile
import unittest
from decimal import Decimal

from application.snapshot import take_snapshot
from domain.models import RoleKind, Team, TeamTotals, UserAccount


class ListUserRepository:
    def __init__(self, users):
        self.users = users

    def _eligible(self, excluded):
        return [u for u in self.users if u.discord_id and u.discord_id not in excluded]

    def get_team_totals(self, excluded=()):
        eligible = self._eligible(excluded)
        return TeamTotals(
            bullas=sum((u.points for u in eligible if u.team is Team.BULLAS), Decimal(0)),
            beras=sum((u.points for u in eligible if u.team is Team.BERAS), Decimal(0)),
        )

    def get_top_users(self, limit=None, team=None, excluded=()):
        users = [u for u in self._eligible(excluded) if team is None or u.team is team]
        users.sort(key=lambda u: u.points, reverse=True)
        return users if limit is None else users[:limit]


class SnapshotTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.out_dir = os.path.join(self._tmp.name, "snap")
        self.repo = ListUserRepository(
            [
                UserAccount("1", "0xa", Decimal(300), Team.BERAS),
                UserAccount("2", "0xb", Decimal(100), Team.BULLAS),
                UserAccount("3", "0xc", Decimal(250), Team.BERAS),
                UserAccount("4", None, Decimal(700), Team.BULLAS),
                UserAccount("admin", "0xz", Decimal(99999), Team.BULLAS),
                UserAccount("5", "0xd", Decimal(50), None),
            ]
        )
        self.roles = {"1": {RoleKind.WHITELIST, RoleKind.FREE_MINT}, "4": {RoleKind.MOOLALIST}}

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _read(self, path):
        with open(path, newline="", encoding="utf-8") as fh:
            return list(csv.reader(fh))

    def test_snapshot_files(self):
        snapshot = take_snapshot(
            self.repo,
            lambda discord_id: self.roles.get(discord_id, set()),
            self.out_dir,
            excluded={"admin"},
        )

        # 800 bullas vs 550 beras once the admin account is left out.
        self.assertIs(snapshot.winning_team, Team.BULLAS)
        names = [os.path.basename(p) for p in snapshot.paths]
        self.assertEqual(names, ["top_2000_bullas.csv", "top_700_beras.csv", "all_players.csv"])

        winning = self._read(snapshot.paths[0])
        self.assertEqual(winning[0], ["address", "points", "whitelist", "moolalist", "freemint"])
        self.assertEqual(winning[1:], [["", "700", "N", "Y", "N"], ["0xb", "100", "N", "N", "N"]])

        losing = self._read(snapshot.paths[1])
        self.assertEqual(losing[1:], [["0xa", "300", "Y", "N", "Y"], ["0xc", "250", "N", "N", "N"]])

        everyone = self._read(snapshot.paths[2])
        self.assertEqual(everyone[0][0], "discord_id")
        self.assertEqual([row[0] for row in everyone[1:]], ["4", "1", "3", "2"])

        snapshot.cleanup()
        self.assertFalse(any(os.path.exists(p) for p in snapshot.paths))


if __name__ == "__main__":
    unittest.main()
