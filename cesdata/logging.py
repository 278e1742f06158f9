"""
CES Data Logging Module

Wraps the standard library logger with optional JSON output, rotating file
output and per-stage metrics for the fetch state machine.
"""

import logging
import logging.handlers
import json
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional
from dataclasses import dataclass, field

from .config import LoggingConfig


_EXTRA_FIELDS = ('stage', 'year', 'variant', 'url', 'attempt', 'metrics')


@dataclass
class FetchMetrics:
    """Collects metrics for one stage of a dataset fetch."""
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    bytes_downloaded: int = 0
    bytes_extracted: int = 0
    rows: int = 0
    columns: int = 0
    attempts: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def duration(self) -> float:
        """Get duration in seconds."""
        end = self.end_time or time.time()
        return end - self.start_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            'duration_seconds': round(self.duration, 3),
            'bytes_downloaded': self.bytes_downloaded,
            'bytes_extracted': self.bytes_extracted,
            'rows': self.rows,
            'columns': self.columns,
            'attempts': self.attempts,
            'error_count': len(self.errors),
            'warning_count': len(self.warnings),
        }

    def add_error(self, error: str, context: Optional[Dict] = None) -> None:
        self.errors.append({
            'message': error,
            'timestamp': datetime.now().isoformat(),
            'context': context or {},
        })

    def add_warning(self, warning: str, context: Optional[Dict] = None) -> None:
        self.warnings.append({
            'message': warning,
            'timestamp': datetime.now().isoformat(),
            'context': context or {},
        })

    def finish(self) -> None:
        self.end_time = time.time()


class StructuredLogFormatter(logging.Formatter):
    """JSON-formatted log output for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class CESLogger:
    """Component logger with stage metrics.

    Keyword arguments given to the logging methods are attached to the record
    as ``extra`` fields, so ``logger.info("...", year="2019")`` shows up in
    structured output.
    """

    def __init__(
        self,
        name: str = 'cesdata',
        log_level: str = 'INFO',
        structured: bool = False,
        log_file: Optional[Path] = None,
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 5,
        fmt: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    ):
        self.name = name
        self.log_level = getattr(logging, str(log_level).upper(), logging.INFO)
        self.structured = structured
        self.log_file = Path(log_file) if log_file else None
        self.max_bytes = max_bytes
        self.backup_count = backup_count
        self.fmt = fmt

        self.logger = logging.getLogger(name)
        self.logger.setLevel(self.log_level)

        # Avoid duplicate handlers when several clients share a name
        if not self.logger.handlers:
            self._setup_handlers()

        self.metrics: Dict[str, FetchMetrics] = {}
        self._current_stage: Optional[str] = None

    @classmethod
    def from_config(cls, name: str, config: LoggingConfig, verbose: bool = True) -> 'CESLogger':
        level = config.level if verbose else 'WARNING'
        return cls(
            name=name,
            log_level=level,
            structured=config.structured,
            log_file=Path(config.log_file_path) if config.log_to_file and config.log_file_path else None,
            max_bytes=config.max_log_size,
            backup_count=config.backup_count,
            fmt=config.format,
        )

    def _formatter(self) -> logging.Formatter:
        if self.structured:
            return StructuredLogFormatter()
        return logging.Formatter(self.fmt)

    def _setup_handlers(self) -> None:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(self._formatter())
        self.logger.addHandler(console_handler)

        if self.log_file:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                self.log_file,
                maxBytes=self.max_bytes,
                backupCount=self.backup_count,
            )
            file_handler.setLevel(self.log_level)
            file_handler.setFormatter(self._formatter())
            self.logger.addHandler(file_handler)

    def current_metrics(self) -> Optional[FetchMetrics]:
        """Metrics of the stage in progress, if any."""
        if self._current_stage is None:
            return None
        return self.metrics.get(self._current_stage)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self.logger.debug(msg, extra=kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self.logger.info(msg, extra=kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self.logger.warning(msg, extra=kwargs)
        metrics = self.current_metrics()
        if metrics is not None:
            metrics.add_warning(msg, kwargs)

    def start_stage(self, stage_name: str) -> FetchMetrics:
        self._current_stage = stage_name
        self.metrics[stage_name] = FetchMetrics()
        self.debug(f"Starting stage: {stage_name}", stage=stage_name)
        return self.metrics[stage_name]

    def finish_stage(self, stage_name: str) -> FetchMetrics:
        metrics = self.metrics.get(stage_name)
        if metrics is None:
            return FetchMetrics()
        metrics.finish()
        self.debug(
            f"Finished stage: {stage_name}",
            stage=stage_name,
            metrics=metrics.to_dict(),
        )
        if self._current_stage == stage_name:
            self._current_stage = None
        return metrics

    def get_stage_metrics(self, stage_name: str) -> Optional[FetchMetrics]:
        return self.metrics.get(stage_name)

    def get_all_metrics(self) -> Dict[str, Dict[str, Any]]:
        return {name: m.to_dict() for name, m in self.metrics.items()}

    def reset_metrics(self) -> None:
        self.metrics.clear()
        self._current_stage = None

    @contextmanager
    def stage(self, stage_name: str) -> Generator[FetchMetrics, None, None]:
        """Context manager for tracking a stage."""
        metrics = self.start_stage(stage_name)
        try:
            yield metrics
        except Exception as e:
            metrics.add_error(str(e))
            raise
        finally:
            self.finish_stage(stage_name)
