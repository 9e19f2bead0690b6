"""Template migration catalog — the ordered set of schema changes for tenant DBs.

Resolved once at startup and injected wherever it is needed. Versions are the
14-digit timestamp prefix of each filename; because every version has the same
width, plain string comparison gives the right order.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

MIGRATION_FILENAME = re.compile(r"^(\d{14})_.*\.sql$")


@dataclass(frozen=True, slots=True)
class MigrationFile:
    version: str
    filename: str
    path: Path

    def read_sql(self) -> str:
        return self.path.read_text(encoding="utf-8")


def extract_version(filename: str) -> str | None:
    """Return the 14-digit version prefix, or None for non-migration files."""
    match = MIGRATION_FILENAME.match(filename)
    return match.group(1) if match else None


class MigrationCatalog:
    """Immutable, ordered view over one migrations directory."""

    def __init__(self, migrations: Iterable[MigrationFile] = (), directory: Path | None = None) -> None:
        self.directory = directory
        self._migrations: tuple[MigrationFile, ...] = tuple(
            sorted(migrations, key=lambda m: m.version)
        )

    @classmethod
    def from_directory(cls, directory: str | Path) -> MigrationCatalog:
        directory = Path(directory)
        found = []
        for entry in directory.iterdir():
            if not entry.is_file():
                continue
            version = extract_version(entry.name)
            if version is None:
                continue
            found.append(MigrationFile(version=version, filename=entry.name, path=entry))
        return cls(found, directory=directory)

    @classmethod
    def resolve(cls, candidates: Sequence[str | Path], base: Path | None = None) -> MigrationCatalog:
        """Load the first candidate directory that holds any .sql file.

        An unresolvable location gives an empty catalog instead of an error so
        tenant creation can degrade rather than block.
        """
        base = base or Path.cwd()
        for candidate in candidates:
            directory = (base / candidate).resolve()
            if not directory.is_dir():
                continue
            if any(p.suffix == ".sql" for p in directory.iterdir()):
                catalog = cls.from_directory(directory)
                logger.info(
                    "Migration catalog: %d migrations from %s (latest %s)",
                    len(catalog), directory, catalog.latest_version(),
                )
                return catalog
        logger.warning(
            "Migration catalog: no template migrations found in %s", list(candidates)
        )
        return cls()

    def __len__(self) -> int:
        return len(self._migrations)

    def list_migrations(self) -> list[MigrationFile]:
        return list(self._migrations)

    def migrations_since(self, version: str | None) -> list[MigrationFile]:
        """Migrations strictly newer than *version*; all of them for None."""
        if version is None:
            return list(self._migrations)
        return [m for m in self._migrations if m.version > version]

    def latest_version(self) -> str | None:
        if not self._migrations:
            return None
        return self._migrations[-1].version

    def pending_count(self, version: str | None) -> int:
        return len(self.migrations_since(version))
