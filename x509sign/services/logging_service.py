"""
Logging and monitoring for the signing service.

Every record written to the log files is a single JSON document. Values
under keys that look like key material or passphrases are masked before
they reach a handler.
"""
import json
import logging
import logging.handlers
import sys
import threading
import time
import traceback
from contextlib import contextmanager
from dataclasses import dataclass, asdict, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Any, Optional, List

SENSITIVE_FIELDS = ("passphrase", "private_key", "privatekey", "password")
REDACTED = "***"


def redact(data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Return a copy of ``data`` with secret-looking values masked."""
    if not data:
        return data
    cleaned = {}
    for key, value in data.items():
        normalized = str(key).lower().replace("-", "_")
        if any(marker in normalized for marker in SENSITIVE_FIELDS):
            cleaned[key] = REDACTED
        elif isinstance(value, dict):
            cleaned[key] = redact(value)
        else:
            cleaned[key] = value
    return cleaned


@dataclass
class OperationMetric:
    """Timing of a single signing operation."""
    operation: str
    duration_ms: float
    timestamp: str
    success: bool
    error_message: Optional[str] = None
    extra_data: Optional[Dict[str, Any]] = None


@dataclass
class ErrorRecord:
    """An error seen while handling a request."""
    error_type: str
    error_message: str
    module: str
    function: str
    line_number: int
    timestamp: str
    stack_trace: Optional[str] = None
    extra_data: Optional[Dict[str, Any]] = field(default=None)


class JSONFormatter(logging.Formatter):
    """Formats log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger_name': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line_number': record.lineno,
            'thread_id': record.thread,
            'process_id': record.process,
            'extra_data': redact(getattr(record, 'extra_data', None)),
        }

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            payload['exception_info'] = {
                'type': exc_type.__name__ if exc_type else None,
                'message': str(exc_value) if exc_value else None,
                'traceback': traceback.format_exception(*record.exc_info),
            }

        return json.dumps(payload, default=str)


class PerformanceMonitor:
    """Collects durations of named operations such as ``sign.publicKey``."""

    def __init__(self):
        self.metrics: List[OperationMetric] = []
        self.lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    @contextmanager
    def measure_operation(self, operation: str, extra_data: Optional[Dict[str, Any]] = None):
        """Time the wrapped block and record whether it raised."""
        started = time.perf_counter()
        error_message = None
        try:
            yield
        except Exception as e:
            error_message = str(e)
            raise
        finally:
            duration_ms = (time.perf_counter() - started) * 1000
            metric = OperationMetric(
                operation=operation,
                duration_ms=duration_ms,
                timestamp=datetime.now().isoformat(),
                success=error_message is None,
                error_message=error_message,
                extra_data=redact(extra_data),
            )
            with self.lock:
                self.metrics.append(metric)

            self.logger.debug(
                f"Operation {operation} took {duration_ms:.2f}ms",
                extra={'extra_data': asdict(metric)}
            )

    def get_metrics(self, operation: Optional[str] = None,
                    since: Optional[datetime] = None) -> List[OperationMetric]:
        with self.lock:
            metrics = list(self.metrics)

        if operation:
            metrics = [m for m in metrics if m.operation == operation]
        if since:
            since_iso = since.isoformat()
            metrics = [m for m in metrics if m.timestamp >= since_iso]
        return metrics

    def get_operation_stats(self, operation: str) -> Dict[str, Any]:
        """Aggregate call counts and durations for one operation."""
        metrics = self.get_metrics(operation=operation)
        if not metrics:
            return {}

        durations = [m.duration_ms for m in metrics]
        success_count = sum(1 for m in metrics if m.success)
        return {
            'operation': operation,
            'total_calls': len(metrics),
            'success_count': success_count,
            'failure_count': len(metrics) - success_count,
            'success_rate': success_count / len(metrics),
            'avg_duration_ms': sum(durations) / len(durations),
            'min_duration_ms': min(durations),
            'max_duration_ms': max(durations),
        }

    def cleanup_old_metrics(self, max_age_hours: int = 24):
        cutoff_iso = (datetime.now() - timedelta(hours=max_age_hours)).isoformat()
        with self.lock:
            self.metrics = [m for m in self.metrics if m.timestamp >= cutoff_iso]


class ErrorTracker:
    """Keeps the errors raised while serving requests."""

    def __init__(self):
        self.errors: List[ErrorRecord] = []
        self.lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def track_error(self, error: Exception, extra_data: Optional[Dict[str, Any]] = None,
                    stacklevel: int = 1):
        """Record ``error`` together with the location of the caller."""
        frame = sys._getframe(stacklevel)
        record = ErrorRecord(
            error_type=type(error).__name__,
            error_message=str(error),
            module=frame.f_globals.get('__name__', 'unknown'),
            function=frame.f_code.co_name,
            line_number=frame.f_lineno,
            timestamp=datetime.now().isoformat(),
            stack_trace=''.join(traceback.format_exception(type(error), error, error.__traceback__)),
            extra_data=redact(extra_data),
        )

        with self.lock:
            self.errors.append(record)

        self.logger.error(
            f"Error tracked: {record.error_type}: {record.error_message}",
            extra={'extra_data': {
                'error_type': record.error_type,
                'module': record.module,
                'function': record.function,
                'line_number': record.line_number,
                **(record.extra_data or {}),
            }},
        )

    def get_errors(self, error_type: Optional[str] = None,
                   since: Optional[datetime] = None) -> List[ErrorRecord]:
        with self.lock:
            errors = list(self.errors)

        if error_type:
            errors = [e for e in errors if e.error_type == error_type]
        if since:
            since_iso = since.isoformat()
            errors = [e for e in errors if e.timestamp >= since_iso]
        return errors

    def get_error_summary(self, since: Optional[datetime] = None) -> Dict[str, Any]:
        errors = self.get_errors(since=since)
        if not errors:
            return {'total_errors': 0, 'error_types': {}}

        error_types: Dict[str, int] = {}
        for error in errors:
            error_types[error.error_type] = error_types.get(error.error_type, 0) + 1

        return {
            'total_errors': len(errors),
            'error_types': error_types,
            'most_common_error': max(error_types.items(), key=lambda item: item[1])[0],
        }

    def cleanup_old_errors(self, max_age_hours: int = 168):
        cutoff_iso = (datetime.now() - timedelta(hours=max_age_hours)).isoformat()
        with self.lock:
            self.errors = [e for e in self.errors if e.timestamp >= cutoff_iso]


class LoggingService:
    """Configures root logging and exposes the monitoring collectors."""

    def __init__(self, config, console: bool = True):
        self.config = config
        self.performance_monitor = PerformanceMonitor()
        self.error_tracker = ErrorTracker()
        self._setup_logging(console)
        self.logger = logging.getLogger(__name__)
        self.logger.info("Logging service initialized")

    def _setup_logging(self, console: bool):
        """Install rotating JSON file handlers and a plain console handler."""
        log_path = Path(self.config.log_file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()

        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        root_logger.setLevel(log_level)

        json_formatter = JSONFormatter()

        file_handler = logging.handlers.RotatingFileHandler(
            filename=str(log_path),
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(json_formatter)
        file_handler.setLevel(log_level)
        root_logger.addHandler(file_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            filename=str(log_path.with_suffix('.errors.log')),
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding='utf-8'
        )
        error_handler.setFormatter(json_formatter)
        error_handler.setLevel(logging.ERROR)
        root_logger.addHandler(error_handler)

        if console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            ))
            console_handler.setLevel(log_level)
            root_logger.addHandler(console_handler)

    def shutdown(self):
        """Detach and close the handlers installed by this service."""
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()

    def log_with_context(self, level: str, message: str, **context):
        logger = logging.getLogger('x509sign')
        log_method = getattr(logger, level.lower(), logger.info)
        log_method(message, extra={'extra_data': context})

    def measure_performance(self, operation: str, extra_data: Optional[Dict[str, Any]] = None):
        return self.performance_monitor.measure_operation(operation, extra_data)

    def track_error(self, error: Exception, extra_data: Optional[Dict[str, Any]] = None):
        self.error_tracker.track_error(error, extra_data, stacklevel=2)

    def get_performance_stats(self, operation: Optional[str] = None) -> Dict[str, Any]:
        """Statistics for one operation, or for every operation seen so far."""
        if operation:
            return self.performance_monitor.get_operation_stats(operation)

        operations = {m.operation for m in self.performance_monitor.get_metrics()}
        return {op: self.performance_monitor.get_operation_stats(op) for op in sorted(operations)}

    def get_error_summary(self, since_hours: int = 24) -> Dict[str, Any]:
        since = datetime.now() - timedelta(hours=since_hours)
        return self.error_tracker.get_error_summary(since=since)

    def cleanup_old_data(self):
        self.performance_monitor.cleanup_old_metrics()
        self.error_tracker.cleanup_old_errors()
        self.logger.info("Cleaned up old monitoring data")

    def get_health_status(self) -> Dict[str, Any]:
        last_hour = datetime.now() - timedelta(hours=1)
        try:
            logging.getLogger('health_check').debug("Health check")
            return {
                'status': 'healthy',
                'recent_errors': self.get_error_summary(since_hours=1).get('total_errors', 0),
                'recent_operations': len(self.performance_monitor.get_metrics(since=last_hour)),
                'timestamp': datetime.now().isoformat()
            }
        except OSError as e:
            return {
                'status': 'unhealthy',
                'error': str(e),
                'timestamp': datetime.now().isoformat()
            }
