"""
CES Data Configuration Module

Provides configuration management for the cache location, network behaviour
and logging. Supports environment variables, dictionaries and programmatic
configuration.
"""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional


class CESError(Exception):
    """Base class for every error raised by the cesdata package."""
    pass


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}")


def _env_flag(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return None
    return raw.lower() in ('true', '1', 'yes')


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    initial_delay: float = 1.0  # seconds
    max_delay: float = 60.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = False

    def __post_init__(self):
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")


@dataclass
class DownloadConfig:
    """Configuration for download operations."""
    timeout: int = 600  # seconds
    chunk_size: int = 8192  # bytes
    verify_ssl: bool = True
    user_agent: str = "cesdata/1.0 (+https://ces-eec.arts.ubc.ca/)"
    retry: RetryConfig = field(default_factory=RetryConfig)

    def __post_init__(self):
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")


@dataclass
class LoggingConfig:
    """Configuration for logging behavior."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    structured: bool = False
    log_to_file: bool = False
    log_file_path: Optional[str] = None
    max_log_size: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5


@dataclass
class CESConfig:
    """Main configuration for dataset retrieval.

    The cache lives in ``cache_root / cache_subdir``. ``cache_root`` defaults
    to the process temporary directory, so cached tables disappear with it.
    ``download_dir`` is the default target for explicit downloads; when it is
    None the user's Downloads directory is used if it exists.
    """
    cache_root: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))
    cache_subdir: str = "ces"
    download_dir: Optional[Path] = None

    download: DownloadConfig = field(default_factory=DownloadConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    verbose: bool = True

    def __post_init__(self):
        self.cache_root = Path(self.cache_root)
        if self.download_dir is not None:
            self.download_dir = Path(self.download_dir)

    @property
    def cache_dir(self) -> Path:
        return self.cache_root / self.cache_subdir

    @property
    def timeout(self) -> int:
        return self.download.timeout

    @property
    def max_retries(self) -> int:
        return self.download.retry.max_retries

    @classmethod
    def from_env(cls) -> 'CESConfig':
        """Create configuration from environment variables."""
        config = cls()

        cache_dir = os.getenv('CES_CACHE_DIR')
        if cache_dir:
            config.cache_root = Path(cache_dir)

        download_dir = os.getenv('CES_DOWNLOAD_DIR')
        if download_dir:
            config.download_dir = Path(download_dir)

        timeout = _env_int('CES_TIMEOUT')
        if timeout is not None:
            config.download.timeout = timeout
            config.download.__post_init__()

        max_retries = _env_int('CES_MAX_RETRIES')
        if max_retries is not None:
            config.download.retry.max_retries = max_retries
            config.download.retry.__post_init__()

        log_level = os.getenv('CES_LOG_LEVEL')
        if log_level:
            config.logging.level = log_level

        verbose = _env_flag('CES_VERBOSE')
        if verbose is not None:
            config.verbose = verbose

        return config

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CESConfig':
        """Create configuration from a dictionary.

        Accepts the flat keys written by ``to_dict`` (``cache_dir``,
        ``timeout``, ``max_retries``, ``log_level``) as well as nested
        ``download``/``retry``/``logging`` sections. Nested values win.
        """
        config = cls()

        if data.get('cache_dir'):
            cache_dir = Path(data['cache_dir'])
            config.cache_root = cache_dir.parent
            config.cache_subdir = cache_dir.name
        if 'cache_root' in data:
            config.cache_root = Path(data['cache_root'])
        if 'cache_subdir' in data:
            config.cache_subdir = data['cache_subdir']
        if 'download_dir' in data and data['download_dir'] is not None:
            config.download_dir = Path(data['download_dir'])
        if 'verbose' in data:
            config.verbose = bool(data['verbose'])

        if data.get('timeout') is not None:
            config.download.timeout = int(data['timeout'])
        if data.get('max_retries') is not None:
            config.download.retry.max_retries = int(data['max_retries'])
        if data.get('log_level'):
            config.logging.level = data['log_level']

        if 'download' in data:
            download = dict(data['download'])
            retry = download.pop('retry', None)
            for k, v in download.items():
                if hasattr(config.download, k):
                    setattr(config.download, k, v)
            if retry:
                for k, v in retry.items():
                    if hasattr(config.download.retry, k):
                        setattr(config.download.retry, k, v)

        # Re-run validation after the in-place updates
        config.download.__post_init__()
        config.download.retry.__post_init__()

        if 'logging' in data:
            for k, v in data['logging'].items():
                if hasattr(config.logging, k):
                    setattr(config.logging, k, v)

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a dictionary for serialization."""
        return {
            'cache_root': str(self.cache_root),
            'cache_subdir': self.cache_subdir,
            'cache_dir': str(self.cache_dir),
            'download_dir': str(self.download_dir) if self.download_dir else None,
            'timeout': self.download.timeout,
            'max_retries': self.download.retry.max_retries,
            'log_level': self.logging.level,
            'verbose': self.verbose,
        }
