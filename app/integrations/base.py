"""
Base integration classes and utilities
"""
from abc import ABC, abstractmethod
from typing import Dict, Any
from datetime import datetime
import logging

logger = logging.getLogger(__name__)


class BaseIntegration(ABC):
    """Base class for the Slack and Zendesk API clients"""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.is_enabled = self._validate_config()

    @abstractmethod
    def _validate_config(self) -> bool:
        """Validate integration configuration"""
        pass

    @abstractmethod
    def test_connection(self) -> bool:
        """Test connection to the external service"""
        pass


class RateLimiter:
    """Rate limiting utility for API calls"""

    def __init__(self, max_requests: int, time_window: int = 60):
        """
        Args:
            max_requests: Maximum requests allowed in time window
            time_window: Time window in seconds (default: 60 seconds)
        """
        self.max_requests = max_requests
        self.time_window = time_window
        self.requests = []

    def can_make_request(self) -> bool:
        """Check if we can make a request without exceeding rate limit"""
        cutoff = datetime.utcnow().timestamp() - self.time_window
        self.requests = [req for req in self.requests if req > cutoff]

        return len(self.requests) < self.max_requests

    def record_request(self):
        self.requests.append(datetime.utcnow().timestamp())

    def get_wait_time(self) -> float:
        """Get seconds to wait before making next request"""
        if self.can_make_request():
            return 0

        oldest_request = min(self.requests)
        wait_time = self.time_window - (datetime.utcnow().timestamp() - oldest_request)
        return max(0, wait_time)


class IntegrationError(Exception):
    """Upstream API failure. Retried by the task queue."""
    pass


class RateLimitError(IntegrationError):
    """Exception raised when rate limit is exceeded"""
    pass


class AuthenticationError(IntegrationError):
    """Exception raised when authentication fails"""
    pass


class WebhookError(Exception):
    """Inbound webhook rejected with an HTTP status"""

    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail
