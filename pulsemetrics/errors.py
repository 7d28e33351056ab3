"""
Error taxonomy shared by the billing endpoints, the data provider and the
entitlement resolver. Each class carries the HTTP status it maps to.
"""


class PulseMetricsError(Exception):
    """Base class for errors raised inside PulseMetrics."""

    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class ConfigurationError(PulseMetricsError):
    """A required credential or secret is not configured."""

    status_code = 500


class ValidationError(PulseMetricsError):
    """A caller-supplied parameter is missing or malformed."""

    status_code = 400


class UpstreamError(PulseMetricsError):
    """An external provider failed or returned a non-success status."""

    status_code = 500


class SignatureError(PulseMetricsError):
    """Webhook signature verification failed."""

    status_code = 400
