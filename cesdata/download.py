"""
CES Data Download Manager

Streams files over HTTP with a bounded retry loop, exponential backoff and
a non-empty check on every transfer.
"""

import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import requests
from urllib3.exceptions import NameResolutionError

from .config import CESConfig, CESError
from .logging import CESLogger


# Failure causes, used only to build an informative final error
TIMEOUT = "timeout"
HOST_RESOLUTION = "host_resolution"
HTTP_ERROR = "http_error"
CONNECTION = "connection"
EMPTY = "empty"
FILESYSTEM = "filesystem"
OTHER = "other"

_RESOLUTION_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "failed to resolve",
    "could not resolve host",
    "temporary failure in name resolution",
)


class DownloadFailed(CESError):
    """Raised when a download does not succeed within the retry budget."""

    def __init__(self, url: str, cause: str, attempts: int, detail: str = ""):
        self.url = url
        self.cause = cause
        self.attempts = attempts
        self.detail = detail
        message = f"Download of {url} failed after {attempts} attempt(s) ({cause})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class EmptyDownload(DownloadFailed):
    """Raised when a transfer reports success but leaves no data behind."""

    def __init__(self, url: str, attempts: int, detail: str = ""):
        super().__init__(url, EMPTY, attempts, detail or "file is empty or missing")


@dataclass
class Success:
    path: Path
    bytes_downloaded: int


@dataclass
class RetryableError:
    cause: str
    message: str


@dataclass
class TerminalError:
    cause: str
    message: str
    exc: BaseException


AttemptResult = Union[Success, RetryableError, TerminalError]


@dataclass
class DownloadResult:
    """Outcome of one dataset download in a batch."""
    year: str
    variant: str
    success: bool
    path: Optional[Path] = None
    skipped: bool = False
    error: Optional[str] = None
    duration: float = 0.0

    def __str__(self) -> str:
        if self.skipped:
            status = "SKIPPED"
        else:
            status = "SUCCESS" if self.success else "FAILED"
        return f"DownloadResult({self.year}/{self.variant}: {status})"


def _is_name_resolution(exc: BaseException) -> bool:
    seen = set()
    pending = [exc]
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, NameResolutionError):
            return True
        if any(marker in str(current).lower() for marker in _RESOLUTION_MARKERS):
            return True
        pending.append(getattr(current, 'reason', None))
        pending.append(current.__cause__)
        pending.append(current.__context__)
        pending.extend(a for a in getattr(current, 'args', ()) if isinstance(a, BaseException))
    return False


def classify_failure(exc: BaseException) -> str:
    """Best-effort cause of a failed transfer."""
    if isinstance(exc, requests.exceptions.Timeout):
        return TIMEOUT
    if isinstance(exc, requests.exceptions.ConnectionError):
        if _is_name_resolution(exc):
            return HOST_RESOLUTION
        return CONNECTION
    if isinstance(exc, requests.exceptions.HTTPError):
        return HTTP_ERROR
    if _is_name_resolution(exc):
        return HOST_RESOLUTION
    return OTHER


class DownloadManager:
    """Downloads files with retry logic and validation.

    Every network failure is retried alike; the cause is classified only for
    the final error. A transfer that leaves an empty file also consumes an
    attempt. Failures that are not network errors (for example an unwritable
    destination) stop the loop immediately.
    """

    def __init__(
        self,
        config: Optional[CESConfig] = None,
        logger: Optional[CESLogger] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config or CESConfig()
        self.download_config = self.config.download
        self.logger = logger or CESLogger(name='cesdata.download')
        self.session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update({'User-Agent': self.download_config.user_agent})
        return session

    def close(self) -> None:
        self.session.close()

    def _calculate_delay(self, attempt: int) -> float:
        """Delay after failed ``attempt`` (1-based): initial * base ** attempt."""
        retry = self.download_config.retry
        delay = retry.initial_delay * (retry.exponential_base ** attempt)
        delay = min(delay, retry.max_delay)

        if retry.jitter:
            delay = delay * (0.5 + random.random())

        return delay

    def _attempt(
        self,
        url: str,
        destination: Path,
        mode: str,
        timeout: float,
        offset: int = 0,
    ) -> AttemptResult:
        bytes_downloaded = 0
        try:
            with self.session.get(
                url,
                stream=True,
                timeout=timeout,
                verify=self.download_config.verify_ssl,
            ) as response:
                response.raise_for_status()
                with open(destination, mode) as f:
                    for chunk in response.iter_content(
                        chunk_size=self.download_config.chunk_size
                    ):
                        if chunk:
                            f.write(chunk)
                            bytes_downloaded += len(chunk)
        except requests.exceptions.RequestException as e:
            return RetryableError(classify_failure(e), str(e))
        except OSError as e:
            return TerminalError(FILESYSTEM, str(e), e)

        if not destination.exists() or destination.stat().st_size <= offset:
            return RetryableError(EMPTY, "transfer completed but the file is empty")

        return Success(destination, bytes_downloaded)

    @staticmethod
    def _discard_partial(destination: Path, offset: int) -> None:
        """Drop bytes written after ``offset``; remove the file if it was new."""
        if offset == 0:
            destination.unlink(missing_ok=True)
        elif destination.exists():
            with open(destination, 'r+b') as f:
                f.truncate(offset)

    def _count_attempts(self, attempts: int) -> None:
        metrics = self.logger.current_metrics()
        if metrics is not None:
            metrics.attempts += attempts

    def fetch(
        self,
        url: str,
        destination: Path,
        mode: str = "wb",
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
    ) -> Path:
        """Download ``url`` to ``destination``.

        In append mode the bytes present before the call are kept; whatever a
        failed attempt appended is truncated away before the next attempt and
        when the download gives up.

        Args:
            url: Source URL
            destination: File to write; its parent must exist
            mode: Binary open mode for the destination ("wb" or "ab")
            timeout: Per-request timeout in seconds (default from config)
            max_retries: Total number of attempts (default from config)

        Returns:
            ``destination``

        Raises:
            DownloadFailed: every attempt failed
            EmptyDownload: the last attempt produced an empty file
        """
        if mode not in ("wb", "ab"):
            raise ValueError(f"Downloads are written with mode 'wb' or 'ab', got {mode!r}")
        destination = Path(destination)
        timeout = timeout if timeout is not None else self.download_config.timeout
        max_retries = max_retries if max_retries is not None else self.download_config.retry.max_retries
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        offset = 0
        if mode == "ab" and destination.exists():
            offset = destination.stat().st_size

        last: Optional[RetryableError] = None
        for attempt in range(1, max_retries + 1):
            result = self._attempt(url, destination, mode, timeout, offset)

            if isinstance(result, Success):
                self._count_attempts(attempt)
                self.logger.debug(
                    f"Downloaded {result.bytes_downloaded:,} bytes from {url}",
                    url=url,
                    attempt=attempt,
                )
                return destination

            self._discard_partial(destination, offset)

            if isinstance(result, TerminalError):
                self._count_attempts(attempt)
                raise DownloadFailed(url, result.cause, attempt, result.message) from result.exc

            last = result
            self.logger.warning(
                f"Download attempt {attempt}/{max_retries} failed for {url}: "
                f"{result.message}",
                url=url,
                attempt=attempt,
            )
            if attempt < max_retries:
                delay = self._calculate_delay(attempt)
                self.logger.info(f"Retrying in {delay:.1f} seconds...")
                time.sleep(delay)

        self._count_attempts(max_retries)
        if last.cause == EMPTY:
            raise EmptyDownload(url, max_retries)
        raise DownloadFailed(url, last.cause, max_retries, last.message)
