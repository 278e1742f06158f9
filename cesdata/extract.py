"""
CES Data Extract Manager

Pulls the statistical data file out of a downloaded ZIP archive. Archive
and scratch directory are removed on every exit path.
"""

import shutil
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import List, Optional, Sequence

from .catalog import SourceFormat
from .config import CESConfig, CESError
from .download import DownloadManager, EmptyDownload
from .logging import CESLogger


class ExtractionFailed(CESError):
    """Raised when an archive cannot be read or unpacked."""

    def __init__(self, archive: Path, reason: str):
        self.archive = Path(archive)
        super().__init__(f"Could not extract {archive}: {reason}")


class NoDataFileInArchive(ExtractionFailed):
    """Raised when an archive holds no file of the expected format."""

    def __init__(self, archive: Path, expected_format: SourceFormat, members: Sequence[str]):
        self.expected_format = expected_format
        self.members = list(members)
        super().__init__(
            archive,
            f"no .{expected_format.extension} file found; "
            f"archive contains: {', '.join(self.members) or 'nothing'}",
        )


@dataclass
class Candidate:
    path: Path
    size: int


def _flat_name(member_name: str) -> str:
    return PurePosixPath(member_name.replace('\\', '/')).name


def _unique_path(directory: Path, name: str) -> Path:
    target = directory / name
    if not target.exists():
        return target
    stem, suffix = Path(name).stem, Path(name).suffix
    counter = 2
    while True:
        target = directory / f"{stem}_{counter}{suffix}"
        if not target.exists():
            return target
        counter += 1


def validate_zip(archive_path: Path) -> None:
    try:
        with zipfile.ZipFile(archive_path, 'r') as zf:
            bad_file = zf.testzip()
    except zipfile.BadZipFile as e:
        raise ExtractionFailed(archive_path, f"invalid ZIP file ({e})") from e
    if bad_file:
        raise ExtractionFailed(archive_path, f"corrupt member {bad_file}")


def extract_flat(archive_path: Path, dest_dir: Path) -> List[Path]:
    """Extract every file in the archive directly into ``dest_dir``.

    Internal directories are dropped. Members whose base names collide get a
    numeric suffix so no file is lost. Returns paths in archive order.
    """
    extracted: List[Path] = []
    try:
        with zipfile.ZipFile(archive_path, 'r') as zf:
            for member in zf.infolist():
                if member.is_dir():
                    continue
                name = _flat_name(member.filename)
                if not name:
                    continue
                target = _unique_path(dest_dir, name)
                with zf.open(member) as src, open(target, 'wb') as dst:
                    shutil.copyfileobj(src, dst)
                extracted.append(target)
    except (zipfile.BadZipFile, zipfile.LargeZipFile, RuntimeError, EOFError) as e:
        raise ExtractionFailed(archive_path, str(e)) from e
    return extracted


def select_data_file(
    files: Sequence[Path],
    expected_format: SourceFormat,
    archive: Optional[Path] = None,
) -> Path:
    """Pick the data file of ``expected_format`` among extracted files.

    When several files match, the largest one wins and ties go to the first
    encountered. This is a heuristic: archives that bundle a subset file
    alongside the full dataset will resolve to the full dataset, but nothing
    guarantees the largest file is the intended one.
    """
    suffix = f".{expected_format.extension}"
    candidates = [
        Candidate(path, path.stat().st_size)
        for path in files
        if path.suffix.lower() == suffix
    ]
    if not candidates:
        raise NoDataFileInArchive(archive or Path("<archive>"), expected_format, [f.name for f in files])

    best = candidates[0]
    for candidate in candidates[1:]:
        if candidate.size > best.size:
            best = candidate
    return best.path


class ExtractManager:
    """Downloads archived sources and extracts their data file."""

    def __init__(
        self,
        config: Optional[CESConfig] = None,
        logger: Optional[CESLogger] = None,
        download_manager: Optional[DownloadManager] = None,
    ):
        self.config = config or CESConfig()
        self.logger = logger or CESLogger(name='cesdata.extract')
        self.download_manager = download_manager or DownloadManager(self.config, self.logger)

    def extract_data_file(
        self,
        archive_path: Path,
        destination: Path,
        expected_format: SourceFormat,
    ) -> Path:
        """Copy the data file inside a local archive to ``destination``."""
        archive_path = Path(archive_path)
        destination = Path(destination)
        with tempfile.TemporaryDirectory(prefix='ces_extract_') as scratch:
            validate_zip(archive_path)
            files = extract_flat(archive_path, Path(scratch))
            self.logger.debug(f"Extracted {len(files)} files from {archive_path.name}")

            matches = [f for f in files if f.suffix.lower() == f".{expected_format.extension}"]
            if len(matches) > 1:
                self.logger.warning(
                    f"Archive holds {len(matches)} .{expected_format.extension} files "
                    f"({', '.join(f.name for f in matches)}); using the largest"
                )
            selected = select_data_file(files, expected_format, archive_path)
            self.logger.info(f"Found data file: {selected.name}")

            try:
                shutil.copyfile(selected, destination)
            except OSError as e:
                destination.unlink(missing_ok=True)
                raise ExtractionFailed(archive_path, f"could not copy {selected.name}: {e}") from e

        if not destination.exists() or destination.stat().st_size == 0:
            destination.unlink(missing_ok=True)
            raise EmptyDownload(str(archive_path), 1, f"extracted {destination.name} is empty")

        metrics = self.logger.current_metrics()
        if metrics is not None:
            metrics.bytes_extracted += destination.stat().st_size
        return destination

    def fetch_from_archive(
        self,
        url: str,
        destination: Path,
        expected_format: SourceFormat,
        timeout: Optional[float] = None,
    ) -> Path:
        """Download a ZIP archive and place its data file at ``destination``.

        Raises:
            DownloadFailed: the archive could not be downloaded
            ExtractionFailed: the archive is corrupt or the copy failed
            NoDataFileInArchive: nothing in the archive has the expected extension
        """
        destination = Path(destination)
        self.logger.info(f"Downloading archive from {url}", url=url)

        with tempfile.TemporaryDirectory(prefix='ces_archive_') as scratch:
            archive_path = Path(scratch) / 'download.zip'
            self.download_manager.fetch(url, archive_path, timeout=timeout)
            return self.extract_data_file(archive_path, destination, expected_format)
