"""
Canadian Election Study data access.

Resolves a (year, variant) pair from the CES catalog (1965-2021), downloads
the published SPSS or Stata file (extracting it from a ZIP archive where
needed), caches the parsed table and normalises column names while keeping
question and value labels attached to every column.

Modules:
    config: Configuration for cache location, network behaviour and logging
    catalog: Static dataset catalog and default variant selection
    paths: Download directory resolution and target checks
    download: HTTP download with retry and backoff
    extract: Data file extraction from ZIP archives
    reader: SPSS/Stata parsing into labelled tables
    table: Labelled column and table model
    transform: Column name normalisation and column selection
    codebook: Codebook and metadata summaries over labelled tables
    cache: On-disk cache of parsed tables
    orchestrator: The CESClient tying the pieces together
    logging: Structured logging infrastructure

Usage:
    from cesdata import CESClient

    client = CESClient()
    table = client.get_dataset("2019")
    df = table.to_dataframe()
"""

from .config import CESConfig, CESError, DownloadConfig, RetryConfig, LoggingConfig
from .catalog import (
    Catalog, DatasetDescriptor, DatasetListing, DEFAULT_DATASETS,
    Encoding, SourceFormat, UnknownVariant, UnknownYear,
)
from .paths import DirectoryCreateError, FileExists, NotWritable
from .download import DownloadFailed, DownloadManager, EmptyDownload
from .extract import ExtractManager, ExtractionFailed, NoDataFileInArchive
from .reader import ParseError, read_survey_file
from .table import Column, SurveyTable
from .cache import CacheEntry, CacheManager
from .codebook import create_codebook, examine_metadata, export_codebook
from .orchestrator import CESClient, CacheWriteWarning, FetchStage, NoCodebookAvailable
from .logging import CESLogger

__all__ = [
    'CESClient',
    'CESConfig',
    'DownloadConfig',
    'RetryConfig',
    'LoggingConfig',
    'Catalog',
    'DatasetDescriptor',
    'DatasetListing',
    'DEFAULT_DATASETS',
    'SourceFormat',
    'Encoding',
    'Column',
    'SurveyTable',
    'CacheEntry',
    'CacheManager',
    'DownloadManager',
    'ExtractManager',
    'FetchStage',
    'CESLogger',
    'read_survey_file',
    'CESError',
    'UnknownYear',
    'UnknownVariant',
    'DirectoryCreateError',
    'FileExists',
    'NotWritable',
    'DownloadFailed',
    'EmptyDownload',
    'ExtractionFailed',
    'NoDataFileInArchive',
    'ParseError',
    'NoCodebookAvailable',
    'CacheWriteWarning',
    'get_dataset',
    'get_subset',
    'download_dataset',
    'download_all',
    'download_codebook',
    'list_datasets',
    'create_codebook',
    'export_codebook',
    'examine_metadata',
]

__version__ = '1.0.0'


def get_dataset(year, variant=None, use_cache=True, normalize_names=True, config=None):
    with CESClient(config) as client:
        return client.get_dataset(year, variant, use_cache=use_cache, normalize_names=normalize_names)


def get_subset(year, variables=None, variant=None, regex=False, use_cache=True, config=None):
    with CESClient(config) as client:
        return client.get_subset(year, variables, variant=variant, regex=regex, use_cache=use_cache)


def download_dataset(year, variant=None, output_dir=None, overwrite=False, config=None):
    with CESClient(config) as client:
        return client.download_dataset(year, variant, output_dir=output_dir, overwrite=overwrite)


def download_all(years=None, variants=None, output_dir=None, overwrite=False, config=None):
    with CESClient(config) as client:
        return client.download_all(years, variants, output_dir=output_dir, overwrite=overwrite)


def download_codebook(year, variant=None, output_dir=None, overwrite=False, config=None):
    with CESClient(config) as client:
        return client.download_codebook(year, variant, output_dir=output_dir, overwrite=overwrite)


def list_datasets(details=True):
    """Catalog rows as (year, variant, type, description) tuples."""
    catalog = Catalog(DEFAULT_DATASETS)
    if not details:
        return catalog.years()
    return catalog.listings()
