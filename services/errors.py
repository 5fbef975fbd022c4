"""
Error taxonomy shared by the reconciliation and banking services.
Each class maps to one HTTP status in main.py.
"""


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    """Malformed financial identifier. User-correctable, surfaced verbatim."""
    status_code = 400


class ProviderError(ServiceError):
    """Banking upstream failed. Not retried."""
    status_code = 502


class DecryptionError(ProviderError):
    """Envelope could not be authenticated with the environment key."""


class ChainUnavailableError(ServiceError):
    """Live chain endpoint unreachable or timed out."""
    status_code = 503


class ConversionError(ServiceError):
    status_code = 400


class InvalidRetentionRequest(ServiceError):
    status_code = 400
