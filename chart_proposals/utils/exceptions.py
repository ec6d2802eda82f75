"""
Custom exceptions for the chart proposal engine

Exception hierarchy with error codes, structured details and a
serializable form for transport collaborators.
"""

import functools
from typing import Optional, Dict, Any
from datetime import datetime


class ChartAnalysisException(Exception):
    """
    Base exception of the chart analysis package

    Every package-specific exception derives from this class so callers
    can handle failures uniformly.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        """
        Args:
            message: Error message
            error_code: Machine-readable error code
            details: Extra error details
            original_exception: Wrapped exception, if any
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now()

        if original_exception:
            self.details['original_error'] = str(original_exception)
            self.details['original_type'] = type(original_exception).__name__

    def to_dict(self) -> Dict[str, Any]:
        """
        Serializable representation of the error

        Returns:
            Dictionary with the error information
        """
        return {
            'error_type': self.__class__.__name__,
            'error_code': self.error_code,
            'message': self.message,
            'details': self.details,
            'timestamp': self.timestamp.isoformat(),
            'original_exception': str(self.original_exception) if self.original_exception else None
        }

    def __str__(self) -> str:
        base_msg = f"[{self.error_code}] {self.message}"
        if self.details:
            base_msg += f" | Details: {self.details}"
        return base_msg


class InsufficientDataException(ChartAnalysisException):
    """
    Not enough bars, swings or touches for the requested operation

    Generators never raise this; it is reserved for callers that ask for
    strict validation.
    """

    def __init__(
        self,
        message: str,
        required_samples: Optional[int] = None,
        provided_samples: Optional[int] = None
    ):
        details = {}
        if required_samples is not None:
            details['required_samples'] = required_samples
        if provided_samples is not None:
            details['provided_samples'] = provided_samples

        super().__init__(
            message=message,
            error_code="INSUFFICIENT_DATA",
            details=details
        )


class InvalidDataException(ChartAnalysisException):
    """
    Malformed input data

    Raised for missing OHLCV columns, broken OHLC relations, negative
    volumes or drawing payloads that fail validation.
    """

    def __init__(
        self,
        message: str,
        validation_errors: Optional[Dict[str, Any]] = None,
        data_info: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        details = {}
        if validation_errors:
            details['validation_errors'] = validation_errors
        if data_info:
            details['data_info'] = data_info

        super().__init__(
            message=message,
            error_code="INVALID_DATA",
            details=details,
            original_exception=original_exception
        )


class FeatureExtractionException(ChartAnalysisException):
    """Failure while turning a detected line into features"""

    def __init__(
        self,
        message: str,
        line_id: Optional[str] = None,
        original_exception: Optional[Exception] = None
    ):
        details = {'line_id': line_id} if line_id else {}
        super().__init__(
            message=message,
            error_code="FEATURE_EXTRACTION_ERROR",
            details=details,
            original_exception=original_exception
        )


class ModelTrainingException(ChartAnalysisException):
    """
    Failure while bootstrapping a trainable scorer
    """

    def __init__(
        self,
        message: str,
        model_params: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        details = {}
        if model_params:
            details['model_params'] = model_params

        super().__init__(
            message=message,
            error_code="MODEL_TRAINING_ERROR",
            details=details,
            original_exception=original_exception
        )


class ScorerUnavailableException(ChartAnalysisException):
    """
    Scorer cannot serve predictions

    Always handled inside the predictor, which switches to the rule-based
    scorer.
    """

    def __init__(self, message: str, scorer: Optional[str] = None):
        details = {'scorer': scorer} if scorer else {}
        super().__init__(
            message=message,
            error_code="SCORER_UNAVAILABLE",
            details=details
        )


class PredictionException(ChartAnalysisException):
    """
    Failure while producing a line quality prediction
    """

    def __init__(
        self,
        message: str,
        prediction_params: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        details = {}
        if prediction_params:
            details['prediction_params'] = prediction_params

        super().__init__(
            message=message,
            error_code="PREDICTION_ERROR",
            details=details,
            original_exception=original_exception
        )


class AnalysisCancelledException(ChartAnalysisException):
    """Streaming analysis stopped through its cancellation token"""

    def __init__(self, message: str = "Analysis cancelled", stage: Optional[str] = None):
        details = {'stage': stage} if stage else {}
        super().__init__(
            message=message,
            error_code="ANALYSIS_CANCELLED",
            details=details
        )


class ConfigurationException(ChartAnalysisException):
    """
    Invalid or missing configuration
    """

    def __init__(
        self,
        message: str,
        config_section: Optional[str] = None,
        invalid_params: Optional[Dict[str, Any]] = None
    ):
        details = {}
        if config_section:
            details['config_section'] = config_section
        if invalid_params:
            details['invalid_params'] = invalid_params

        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details=details
        )


def handle_analysis_exception(func):
    """
    Wrap standard exceptions raised by ``func`` into package exceptions

    Args:
        func: Function to decorate

    Returns:
        Wrapped function
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ChartAnalysisException:
            raise
        except ValueError as e:
            raise InvalidDataException(
                f"Invalid data in {func.__name__}: {e}",
                original_exception=e
            ) from e
        except KeyError as e:
            raise InvalidDataException(
                f"Missing required field in {func.__name__}: {e}",
                original_exception=e
            ) from e
        except Exception as e:
            raise ChartAnalysisException(
                f"Unexpected error in {func.__name__}: {e}",
                original_exception=e
            ) from e

    return wrapper


def create_error_response(exception: ChartAnalysisException) -> Dict[str, Any]:
    """
    Standard error payload for transport collaborators

    Args:
        exception: Package exception

    Returns:
        Error response dictionary
    """
    return {
        "success": False,
        "error": {
            "type": exception.__class__.__name__,
            "code": exception.error_code,
            "message": exception.message,
            "details": exception.details,
            "timestamp": exception.timestamp.isoformat()
        }
    }
