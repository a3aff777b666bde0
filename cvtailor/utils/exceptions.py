"""
Custom Exception Classes for the CV match engine
"""
from typing import Dict, Any
from fastapi import HTTPException


class CVTailorBaseException(Exception):
    """Base exception for the match engine"""

    def __init__(
        self,
        message: str,
        error_code: str = None,
        details: Dict[str, Any] = None,
        cause: Exception = None
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/response"""
        result = {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }
        if self.cause:
            result["cause"] = str(self.cause)
        return result


class ValidationError(CVTailorBaseException):
    """Raised when required input is missing or malformed"""

    def __init__(self, message: str, field: str = None, value: Any = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if field:
            details['field'] = field
        if value is not None:
            details['invalid_value'] = str(value)
        super().__init__(message, error_code="VALIDATION_ERROR", details=details, **kwargs)


class EmbeddingError(CVTailorBaseException):
    """Raised when text cannot be embedded (empty input, provider unreachable)"""

    def __init__(self, message: str, model_name: str = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if model_name:
            details['model_name'] = model_name
        super().__init__(message, error_code="EMBEDDING_ERROR", details=details, **kwargs)


class DimensionMismatchError(CVTailorBaseException):
    """Raised when comparing vectors of different lengths"""

    def __init__(self, message: str, left: int = None, right: int = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if left is not None:
            details['left_dimension'] = left
        if right is not None:
            details['right_dimension'] = right
        super().__init__(message, error_code="DIMENSION_MISMATCH", details=details, **kwargs)


class RepositoryError(CVTailorBaseException):
    """Raised when the component repository fails"""

    def __init__(self, message: str, operation: str = None, collection: str = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if operation:
            details['operation'] = operation
        if collection:
            details['collection'] = collection
        super().__init__(message, error_code="REPOSITORY_ERROR", details=details, **kwargs)


class DecompositionError(CVTailorBaseException):
    """Raised when a job description cannot be read or decomposed"""

    def __init__(self, message: str, document_type: str = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if document_type:
            details['document_type'] = document_type
        super().__init__(message, error_code="DECOMPOSITION_ERROR", details=details, **kwargs)


class ConfigurationError(CVTailorBaseException):
    """Raised when configuration is invalid or missing"""

    def __init__(self, message: str, config_key: str = None, config_value: Any = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if config_key:
            details['config_key'] = config_key
        if config_value is not None:
            details['config_value'] = str(config_value)
        super().__init__(message, error_code="CONFIGURATION_ERROR", details=details, **kwargs)


# HTTP Exception Mapping
def map_to_http_exception(exc: CVTailorBaseException) -> HTTPException:
    """Map engine exceptions to HTTP exceptions for the request handlers"""

    status_code_mapping = {
        ValidationError: 400,
        ConfigurationError: 400,
        DimensionMismatchError: 500,
        DecompositionError: 422,
        EmbeddingError: 502,
        RepositoryError: 502,
    }

    status_code = status_code_mapping.get(type(exc), 500)

    detail = {
        "error": exc.to_dict(),
        "message": exc.message
    }

    return HTTPException(status_code=status_code, detail=detail)
