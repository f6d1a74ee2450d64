from scripts.import_leaderboard import main as import_main, run_import
from scripts.update_country_data import run_backfill

from airdrop_portal.infra.database import DatabaseManager
from airdrop_portal.infra.repository.eligible_user_repository import EligibleUserRepository


class FixedGeolocation:
    closed = False

    async def get_country(self, ip):
        return "Canada"

    async def close(self):
        self.closed = True


def write_leaderboard(path):
    path.write_text(
        "Wallet,XP,Rank\n"
        f"0x{'11' * 20},900,1\n"
        f"0x{'22' * 20},800,2\n"
        "broken,1,3\n"
    )
    return path


async def test_run_import(tmp_path, capsys):
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'import.db'}"

    report = await run_import(str(write_leaderboard(tmp_path / "board.csv")), database_url=database_url)

    assert report.imported == 2
    assert report.errors == 1
    output = capsys.readouterr().out
    assert "Imported: 2" in output
    assert "Total eligible: 2" in output


def test_import_main_missing_file(tmp_path):
    assert import_main([str(tmp_path / "nope.csv"), "--database-url", f"sqlite+aiosqlite:///{tmp_path / 'x.db'}"]) == 1


async def test_run_backfill(tmp_path, capsys):
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'backfill.db'}"
    manager = DatabaseManager(database_url)
    await manager.create_tables()
    async with manager.get_session_factory()() as session:
        await EligibleUserRepository(session).bulk_insert([{
            "wallet_address": "0x" + "33" * 20,
            "allocated_amount": "1",
            "rank": 1,
            "ip_address": "8.8.8.8",
            "country": "Unknown",
        }])
    await manager.close()
    geolocation = FixedGeolocation()

    report = await run_backfill(database_url, batch_delay=0, geolocation=geolocation)

    assert report.updated == 1
    assert geolocation.closed is True
    assert "Updated: 1" in capsys.readouterr().out
