from typing import Optional
from fastapi import status

class BaseAppException(Exception):
    """Base exception for application"""
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
                 details: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        """Return error response as dictionary with error code"""
        body = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            body["details"] = self.details
        return body

class ConfigurationError(BaseAppException):
    """Raised when a required binding (database, API key) is missing"""
    error_code = "CONFIGURATION_ERROR"

    def __init__(self, message: str = "Service not configured", details: Optional[str] = None):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR, details)

class InvalidParameterException(BaseAppException):
    """Raised when request filter parameters are invalid"""
    error_code = "INVALID_PARAMETER"

    def __init__(self, message: str = "Invalid parameter", details: Optional[str] = None):
        super().__init__(message, status.HTTP_400_BAD_REQUEST, details)

class ContentNotFoundException(BaseAppException):
    """Raised when content is not found"""
    error_code = "CONTENT_NOT_FOUND"

    def __init__(self, message: str = "Content not found"):
        super().__init__(message, status.HTTP_404_NOT_FOUND)
