from .http_retry import RetryPolicy

__all__ = ["RetryPolicy"]
