"""ZIP packaging for multi-file conversions."""

import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List

from heic_converter.core.exceptions import ArchiveError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArchiveArtifact:
    path: Path
    members: List[str]
    total_size: int


def package_archive(output_paths: Iterable[Path], archive_path: Path) -> ArchiveArtifact:
    """Bundle converted files into one ZIP named ``archive_path``.

    Entries are stored under their basenames only. A path that no longer
    exists is skipped with a warning; an I/O failure raises ArchiveError and
    leaves no partial archive behind.
    """
    archive_path = Path(archive_path)
    members: List[str] = []
    try:
        archive_path.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as bundle:
            for path in output_paths:
                path = Path(path)
                if not path.is_file():
                    logger.warning("Skipping missing archive member: %s", path.name)
                    continue
                if path.name in members:
                    logger.warning("Skipping duplicate archive member: %s", path.name)
                    continue
                bundle.write(path, arcname=path.name)
                members.append(path.name)
        total_size = archive_path.stat().st_size
    except (OSError, zipfile.BadZipFile) as exc:
        logger.error("Archive creation failed for %s: %s", archive_path.name, exc)
        archive_path.unlink(missing_ok=True)
        raise ArchiveError.for_archive(archive_path.name, original_error=exc) from exc

    logger.info(
        "Created archive %s with %d files (%.2fMB)",
        archive_path.name,
        len(members),
        total_size / (1024 * 1024),
    )
    return ArchiveArtifact(path=archive_path, members=members, total_size=total_size)
