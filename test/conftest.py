import sys
from datetime import datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def open_repo(tmp_path: Path, name: str = "alem.db"):
    from alem.repositories.sqlite_repo import SqliteRepository

    return SqliteRepository(tmp_path / name).open()


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now
