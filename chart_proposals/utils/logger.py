"""
Structured logging utilities for the chart proposal engine

Structured logging on top of structlog with service context, callsite
information and JSON / key-value / colored console renderers.
"""

import functools
import logging
import os
import sys
import time
from typing import Optional, Dict, Any, Union
from pathlib import Path
from enum import Enum

import structlog
from structlog.types import Processor


class LogLevel(str, Enum):
    """Logging levels"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Output formats"""
    JSON = "json"
    TEXT = "text"
    COLORED = "colored"


# Global logging state
_logging_configured = False
_log_level = LogLevel.INFO
_log_format = LogFormat.JSON


def configure_logging(
    level: LogLevel = LogLevel.INFO,
    format_type: LogFormat = LogFormat.JSON,
    log_file: Optional[Union[str, Path]] = None,
    service_name: str = "chart-proposals",
    service_version: str = "1.0.0",
    environment: str = "development",
    force: bool = False
) -> None:
    """
    Configure structured logging for the whole package

    Args:
        level: Logging level
        format_type: Output format
        log_file: Optional path of a JSON log file
        service_name: Service name attached to every event
        service_version: Service version attached to every event
        environment: Deployment environment
        force: Reconfigure even when logging is already set up
    """
    global _logging_configured, _log_level, _log_format

    if _logging_configured and not force:
        return

    level = LogLevel(level)
    format_type = LogFormat(format_type)
    _log_level = level
    _log_format = format_type

    processors = [
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
        structlog.processors.format_exc_info,
        _add_service_context(service_name, service_version, environment),
    ]

    if format_type == LogFormat.JSON:
        processors.append(structlog.processors.JSONRenderer())
    elif format_type == LogFormat.COLORED:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.append(
            structlog.processors.KeyValueRenderer(
                key_order=['timestamp', 'level', 'logger', 'event']
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.value),
        force=force
    )

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, level.value))

        # Files are always JSON
        file_formatter = structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
        )
        file_handler.setFormatter(file_formatter)
        logging.getLogger().addHandler(file_handler)

    _suppress_noisy_loggers()

    _logging_configured = True


def _add_service_context(
    service_name: str,
    service_version: str,
    environment: str
) -> Processor:
    """
    Build a processor that stamps service metadata on each event

    Args:
        service_name: Service name
        service_version: Service version
        environment: Deployment environment

    Returns:
        structlog processor
    """
    def processor(logger, method_name, event_dict):
        event_dict.update({
            'service': service_name,
            'version': service_version,
            'environment': environment,
            'pid': os.getpid(),
        })
        return event_dict

    return processor


def _suppress_noisy_loggers():
    """Quiet down third-party loggers"""
    noisy_loggers = [
        'asyncio',
        'concurrent.futures',
        'sklearn',
        'matplotlib',
    ]

    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """
    Get a configured structured logger

    Args:
        name: Logger name (defaults to the caller's module)

    Returns:
        Structured logger
    """
    if not _logging_configured:
        configure_logging()

    if name is None:
        import inspect
        frame = inspect.currentframe().f_back
        name = frame.f_globals.get('__name__', 'unknown')

    return structlog.get_logger(name)


def log_performance_metrics(
    logger: structlog.BoundLogger,
    operation: str,
    duration_seconds: float,
    success: bool = True,
    additional_metrics: Optional[Dict[str, Any]] = None
):
    """
    Log performance metrics of an operation

    Args:
        logger: Target logger
        operation: Operation name
        duration_seconds: Duration in seconds
        success: Whether the operation succeeded
        additional_metrics: Extra fields
    """
    metrics = {
        'operation': operation,
        'duration_seconds': round(duration_seconds, 4),
        'success': success,
        'performance_log': True
    }

    if additional_metrics:
        metrics.update(additional_metrics)

    if success:
        logger.info(f"Performance: {operation} completed", **metrics)
    else:
        logger.error(f"Performance: {operation} failed", **metrics)


def log_model_training(
    logger: structlog.BoundLogger,
    model_name: str,
    training_duration: float,
    samples_count: int,
    model_params: Dict[str, Any],
    training_metrics: Optional[Dict[str, float]] = None
):
    """
    Log a completed scorer bootstrap

    Args:
        logger: Target logger
        model_name: Scorer name
        training_duration: Duration in seconds
        samples_count: Number of training samples
        model_params: Model hyperparameters
        training_metrics: Fit metrics
    """
    log_data = {
        'model': model_name,
        'training_duration_seconds': round(training_duration, 4),
        'training_samples': samples_count,
        'model_parameters': model_params,
        'training_log': True
    }

    if training_metrics:
        log_data['training_metrics'] = training_metrics

    logger.info("Model training completed", **log_data)


class LoggerMixin:
    """
    Mixin that gives a class a bound structured logger

    The logger is bound to the class name plus any context set through
    ``set_log_context``.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._logger = None
        self._log_context = {}

    @property
    def logger(self) -> structlog.BoundLogger:
        """Class logger"""
        if getattr(self, "_logger", None) is None:
            class_name = self.__class__.__name__
            module_name = self.__class__.__module__
            base_logger = get_logger(f"{module_name}.{class_name}")

            context = {
                'class': class_name,
                **getattr(self, "_log_context", {})
            }

            self._logger = base_logger.bind(**context)

        return self._logger

    def set_log_context(self, **kwargs):
        """
        Attach extra context to every event of this instance

        Args:
            **kwargs: Context variables
        """
        if not hasattr(self, "_log_context"):
            self._log_context = {}
        self._log_context.update(kwargs)
        self._logger = None

    def log_operation_start(self, operation: str, **kwargs):
        """Log the start of an operation"""
        self.logger.info(f"Starting {operation}", operation=operation, **kwargs)

    def log_operation_end(self, operation: str, success: bool = True, **kwargs):
        """Log the end of an operation"""
        if success:
            self.logger.info(f"Completed {operation}", operation=operation, success=success, **kwargs)
        else:
            self.logger.error(f"Failed {operation}", operation=operation, success=success, **kwargs)


def timed_operation(operation_name: Optional[str] = None):
    """
    Decorator measuring the wall time of an operation

    Args:
        operation_name: Operation name (defaults to the function name)

    Returns:
        Function decorator
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger(func.__module__)
            op_name = operation_name or func.__name__

            start_time = time.time()
            logger.debug(f"Starting timed operation: {op_name}")

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                log_performance_metrics(
                    logger=logger,
                    operation=op_name,
                    duration_seconds=time.time() - start_time,
                    success=False,
                    additional_metrics={'error': str(e)}
                )
                raise

            log_performance_metrics(
                logger=logger,
                operation=op_name,
                duration_seconds=time.time() - start_time,
                success=True
            )
            return result

        return wrapper
    return decorator
