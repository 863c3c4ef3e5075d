"""
Custom exception types for the image variant pipeline
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PROCESSING_FAILED = "PROCESSING_FAILED"
    STORAGE_ERROR = "STORAGE_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


class ImageProcessingError(Exception):
    """Base exception for image processing errors"""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorKind] = None,
        cause: Optional[BaseException] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.cause = cause
        super().__init__(self.message)

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error_code

    def to_dict(self) -> Dict[str, Any]:
        """Render the error in the {error, details, error_code} envelope."""
        return {
            "error": type(self).__name__,
            "details": self.message,
            "error_code": self.error_code.value if self.error_code else None,
        }


class UnsupportedFormatError(ImageProcessingError):
    """Exception raised when an extension or MIME type is not allowed

    Args:
        value (str): The rejected extension or MIME type

    Example:
        raise UnsupportedFormatError(".pdf")
    """

    def __init__(self, value: str):
        super().__init__(
            f"Unsupported image format: {value}", ErrorKind.UNSUPPORTED_FORMAT
        )
        self.value = value


class ValidationFailedError(ImageProcessingError):
    """Exception raised when the input is empty or exceeds the size limit"""

    def __init__(self, message: str):
        super().__init__(message, ErrorKind.VALIDATION_ERROR)


class ProcessingFailedError(ImageProcessingError):
    """Exception raised when an image cannot be decoded, encoded or orchestrated"""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message, ErrorKind.PROCESSING_FAILED, cause)


class StorageFailedError(ImageProcessingError):
    """Exception raised when the storage backend fails for a fatal operation"""

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        path: Optional[str] = None,
    ):
        super().__init__(message, ErrorKind.STORAGE_ERROR, cause)
        self.path = path


class ConfigurationError(ImageProcessingError):
    """Exception raised when configuration is invalid"""

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(message, ErrorKind.CONFIGURATION_ERROR)
        self.config_key = config_key


class StorageDriverError(Exception):
    """Exception raised by storage backends on I/O failure"""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path
