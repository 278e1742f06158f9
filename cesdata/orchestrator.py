"""
CES Data Orchestrator

Coordinates catalog lookup, cache, retrieval, parsing and normalisation for
single datasets, and drives batch and codebook downloads.
"""

import os
import tempfile
import time
import warnings
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional, Sequence, Union

from .cache import CacheManager
from .catalog import Catalog, DatasetDescriptor, DatasetListing, DEFAULT_DATASETS
from .config import CESConfig, CESError
from .download import DownloadManager, DownloadResult
from .extract import ExtractManager
from .logging import CESLogger, FetchMetrics
from .paths import check_writable_target, ensure_directory, resolve_directory
from .reader import read_survey_file
from .table import SurveyTable
from .transform import normalize_column_names, subset_columns


class FetchStage(Enum):
    """States of a single dataset fetch."""
    VALIDATE = "validate"
    CACHE_LOOKUP = "cache_lookup"
    RETRIEVE = "retrieve"
    PARSE = "parse"
    CACHE_STORE = "cache_store"
    NORMALIZE = "normalize"
    DONE = "done"


class NoCodebookAvailable(CESError):
    """Raised when a dataset has no published codebook."""

    def __init__(self, year: str, variant: str):
        self.year = year
        self.variant = variant
        super().__init__(f"No codebook is available for year {year} variant '{variant}'")


class CacheWriteWarning(UserWarning):
    """Issued when a parsed table could not be written to the cache."""


Reader = Callable[..., SurveyTable]


class CESClient:
    """Entry point for fetching and downloading CES datasets.

    Fetch flow for ``get_dataset``::

        VALIDATE -> CACHE_LOOKUP -> hit  -> NORMALIZE -> DONE
                                 -> miss -> RETRIEVE -> PARSE -> CACHE_STORE -> NORMALIZE -> DONE

    The cache holds tables as parsed, before name normalisation, so the
    ``normalize_names`` flag is honoured on hits and misses alike.

    All calls are synchronous. A client is not meant to be shared between
    threads.
    """

    def __init__(
        self,
        config: Optional[CESConfig] = None,
        catalog: Optional[Catalog] = None,
        logger: Optional[CESLogger] = None,
        download_manager: Optional[DownloadManager] = None,
        extract_manager: Optional[ExtractManager] = None,
        cache: Optional[CacheManager] = None,
        reader: Reader = read_survey_file,
    ):
        self.config = config or CESConfig.from_env()
        self.logger = logger or CESLogger.from_config(
            'cesdata.client', self.config.logging, verbose=self.config.verbose,
        )
        self.catalog = catalog if catalog is not None else Catalog(DEFAULT_DATASETS)

        self.download_manager = download_manager or DownloadManager(self.config, self.logger)
        self.extract_manager = extract_manager or ExtractManager(
            self.config, self.logger, self.download_manager,
        )
        self.cache = cache or CacheManager(self.config.cache_dir, logger=self.logger)
        self.reader = reader

        self.current_stage: Optional[FetchStage] = None

    def close(self) -> None:
        self.download_manager.close()

    def __enter__(self) -> 'CESClient':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @contextmanager
    def _stage(self, stage: FetchStage) -> Generator[FetchMetrics, None, None]:
        self.current_stage = stage
        with self.logger.stage(stage.value) as metrics:
            yield metrics

    # Catalog

    def list_datasets(self, details: bool = True) -> Union[List[DatasetListing], List[str]]:
        """Catalog rows as (year, variant, type, description), in catalog order.

        With ``details=False`` only the ordered list of years is returned.
        """
        if not details:
            return self.catalog.years()
        return self.catalog.listings()

    def list_variants(self, year: str) -> List[str]:
        return self.catalog.list_variants(year)

    def describe(self, year: str, variant: Optional[str] = None) -> DatasetDescriptor:
        return self.catalog.lookup(year, variant, logger=self.logger)

    # Retrieval

    def _retrieve(self, descriptor: DatasetDescriptor, destination: Path) -> Path:
        if not descriptor.verified:
            self.logger.warning(
                f"The source for CES {descriptor.year} ({descriptor.variant}) has not been "
                f"verified against the archive listing: {descriptor.source_url}",
                year=descriptor.year, variant=descriptor.variant, url=descriptor.source_url,
            )
        if descriptor.is_archive:
            return self.extract_manager.fetch_from_archive(
                descriptor.source_url,
                destination,
                descriptor.source_format,
                timeout=self.config.timeout,
            )
        return self.download_manager.fetch(
            descriptor.source_url,
            destination,
            timeout=self.config.timeout,
            max_retries=self.config.max_retries,
        )

    def _retrieve_into(self, descriptor: DatasetDescriptor, path: Path) -> Path:
        """Retrieve to a partial file next to ``path`` and move it into place."""
        partial = path.with_name(path.name + '.part')
        try:
            self._retrieve(descriptor, partial)
            os.replace(partial, path)
        finally:
            partial.unlink(missing_ok=True)
        return path

    def _download_url_into(self, url: str, path: Path) -> Path:
        partial = path.with_name(path.name + '.part')
        try:
            self.download_manager.fetch(
                url, partial,
                timeout=self.config.timeout,
                max_retries=self.config.max_retries,
            )
            os.replace(partial, path)
        finally:
            partial.unlink(missing_ok=True)
        return path

    # Fetch

    def get_dataset(
        self,
        year: str,
        variant: Optional[str] = None,
        use_cache: bool = True,
        normalize_names: bool = True,
    ) -> SurveyTable:
        """Load one CES dataset as a labelled table.

        Args:
            year: Election year, e.g. "2019"
            variant: Edition; None picks the year's default edition
            use_cache: Read from and write to the on-disk cache
            normalize_names: Lower-case column names with underscores for spaces

        Returns:
            SurveyTable with question and value labels on every column

        Raises:
            UnknownYear, UnknownVariant: before any I/O
            DownloadFailed, ExtractionFailed: retrieval failed
            ParseError: the downloaded file could not be read
        """
        self.logger.reset_metrics()

        with self._stage(FetchStage.VALIDATE):
            descriptor = self.catalog.lookup(year, variant, logger=self.logger)
        year, variant = descriptor.year, descriptor.variant

        table = None
        if use_cache:
            with self._stage(FetchStage.CACHE_LOOKUP):
                table = self.cache.get(year, variant)
            if table is not None:
                self.logger.info(
                    f"Using cached version of CES {year} ({variant}) data",
                    year=year, variant=variant,
                )

        if table is None:
            table = self._fetch_and_parse(descriptor)

            if use_cache:
                with self._stage(FetchStage.CACHE_STORE):
                    self._store(descriptor, table)

        if normalize_names:
            with self._stage(FetchStage.NORMALIZE):
                table = normalize_column_names(table, self.logger)

        self.current_stage = FetchStage.DONE
        self.logger.info(
            f"CES {year} ({variant}) dataset ready: "
            f"{table.n_rows:,} rows and {table.n_columns:,} columns",
            year=year, variant=variant,
        )
        if descriptor.citation:
            self.logger.info(f"Please cite: {descriptor.citation}", year=year, variant=variant)
        return table

    def _fetch_and_parse(self, descriptor: DatasetDescriptor) -> SurveyTable:
        year, variant = descriptor.year, descriptor.variant
        with tempfile.TemporaryDirectory(prefix='ces_fetch_') as scratch:
            data_path = Path(scratch) / descriptor.file_name()

            with self._stage(FetchStage.RETRIEVE) as metrics:
                self.logger.info(
                    f"Downloading CES {year} ({variant}) data from {descriptor.source_url}",
                    year=year, variant=variant, url=descriptor.source_url,
                )
                self._retrieve(descriptor, data_path)
                metrics.bytes_downloaded = data_path.stat().st_size

            with self._stage(FetchStage.PARSE) as metrics:
                table = self.reader(data_path, descriptor.source_format, descriptor.encoding)
                metrics.rows = table.n_rows
                metrics.columns = table.n_columns
        return table

    def _store(self, descriptor: DatasetDescriptor, table: SurveyTable) -> None:
        try:
            path = self.cache.put(descriptor.year, descriptor.variant, table)
        except Exception as e:
            message = (
                f"Could not cache CES {descriptor.year} ({descriptor.variant}) data: {e}"
            )
            self.logger.warning(message, year=descriptor.year, variant=descriptor.variant)
            warnings.warn(message, CacheWriteWarning, stacklevel=3)
            return
        self.logger.debug(f"Data cached at: {path}")

    def get_subset(
        self,
        year: str,
        variables: Optional[Sequence[str]] = None,
        variant: Optional[str] = None,
        regex: bool = False,
        use_cache: bool = True,
        normalize_names: bool = True,
    ) -> SurveyTable:
        """Load a dataset and keep only the named (or matching) variables."""
        table = self.get_dataset(year, variant, use_cache=use_cache, normalize_names=normalize_names)
        return subset_columns(table, variables, regex=regex, logger=self.logger)

    # Downloads

    def download_dataset(
        self,
        year: str,
        variant: Optional[str] = None,
        output_dir: Optional[Union[str, Path]] = None,
        overwrite: bool = False,
    ) -> Path:
        """Save the raw data file as ``ces_<year>_<variant>.<sav|dta>``.

        Raises:
            FileExists: target exists and ``overwrite`` is False
            NotWritable: target exists and cannot be replaced
            DownloadFailed, ExtractionFailed: retrieval failed
        """
        descriptor = self.catalog.lookup(year, variant, logger=self.logger)
        directory = ensure_directory(resolve_directory(output_dir or self.config.download_dir))
        path = check_writable_target(directory / descriptor.file_name(), overwrite)

        self.logger.info(
            f"Downloading CES {descriptor.year} ({descriptor.variant}) dataset "
            f"from {descriptor.source_url} to {path}",
            year=descriptor.year, variant=descriptor.variant,
        )
        self._retrieve_into(descriptor, path)
        self.logger.info(f"Successfully downloaded dataset to: {path}")
        return path

    def download_all(
        self,
        years: Optional[Sequence[str]] = None,
        variants: Optional[Sequence[str]] = None,
        output_dir: Optional[Union[str, Path]] = None,
        overwrite: bool = False,
    ) -> List[Path]:
        """Download every dataset matching the filters.

        A failed dataset is logged as a warning and the batch continues.
        Existing files are skipped unless ``overwrite`` is set.

        Returns:
            Paths of files present after the batch (downloaded or skipped)
        """
        descriptors = self.catalog.filter(years, variants)
        if not descriptors:
            raise ValueError(
                "No datasets to download. Please check the 'years' and 'variants' filters."
            )
        directory = ensure_directory(resolve_directory(output_dir or self.config.download_dir))

        results = [self._download_one(d, directory, overwrite) for d in descriptors]

        succeeded = sum(1 for r in results if r.success and not r.skipped)
        skipped = sum(1 for r in results if r.skipped)
        failed = [r for r in results if not r.success]
        self.logger.info(
            f"Download summary: {len(self.catalog)} datasets available, "
            f"{len(descriptors)} attempted, {succeeded} downloaded, "
            f"{skipped} skipped, {len(failed)} failed. Files are in {directory}",
        )
        if failed:
            self.logger.warning(
                "Some downloads were not successful: "
                + ", ".join(f"{r.year} ({r.variant})" for r in failed)
            )
        return [r.path for r in results if r.success]

    def _download_one(
        self,
        descriptor: DatasetDescriptor,
        directory: Path,
        overwrite: bool,
    ) -> DownloadResult:
        year, variant = descriptor.year, descriptor.variant
        path = directory / descriptor.file_name()

        if path.exists() and not overwrite:
            self.logger.info(
                f"File already exists: {path}. Skipping download (use overwrite=True to overwrite)",
                year=year, variant=variant,
            )
            return DownloadResult(year, variant, success=True, path=path, skipped=True)

        start = time.time()
        try:
            check_writable_target(path, overwrite)
            self.logger.info(
                f"Downloading CES {year} ({variant}) dataset from {descriptor.source_url}",
                year=year, variant=variant,
            )
            self._retrieve_into(descriptor, path)
        except (CESError, OSError) as e:
            self.logger.warning(
                f"Failed to download CES {year} ({variant}) dataset: {e}",
                year=year, variant=variant,
            )
            return DownloadResult(
                year, variant, success=False, error=str(e), duration=time.time() - start,
            )

        self.logger.info(f"Successfully downloaded CES {year} ({variant}) dataset")
        return DownloadResult(
            year, variant, success=True, path=path, duration=time.time() - start,
        )

    def codebook_file_name(self, descriptor: DatasetDescriptor) -> str:
        if len(self.catalog.list_variants(descriptor.year)) > 1:
            return f"CES_{descriptor.year}_{descriptor.variant}_codebook.pdf"
        return f"CES_{descriptor.year}_codebook.pdf"

    def download_codebook(
        self,
        year: str,
        variant: Optional[str] = None,
        output_dir: Optional[Union[str, Path]] = None,
        overwrite: bool = False,
    ) -> Path:
        """Download the official PDF codebook for a dataset.

        Raises:
            NoCodebookAvailable: the dataset has no codebook URL
            FileExists, NotWritable: see ``download_dataset``
            DownloadFailed: retrieval failed
        """
        descriptor = self.catalog.lookup(year, variant, logger=self.logger)
        if not descriptor.has_codebook:
            raise NoCodebookAvailable(descriptor.year, descriptor.variant)

        directory = ensure_directory(resolve_directory(output_dir or self.config.download_dir))
        path = check_writable_target(directory / self.codebook_file_name(descriptor), overwrite)

        self.logger.info(
            f"Downloading CES {descriptor.year} ({descriptor.variant}) codebook "
            f"from {descriptor.codebook_url} to {path}",
            year=descriptor.year, variant=descriptor.variant,
        )
        self._download_url_into(descriptor.codebook_url, path)
        self.logger.info(f"Successfully downloaded codebook to: {path}")
        return path

    def get_status(self) -> Dict[str, Any]:
        """Stage of the last fetch, its per-stage metrics and the config."""
        return {
            'current_stage': self.current_stage.value if self.current_stage else None,
            'metrics': self.logger.get_all_metrics(),
            'config': self.config.to_dict(),
        }
