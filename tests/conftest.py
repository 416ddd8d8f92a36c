# RentMarket Live Suite - Shared Configuration and Fixtures
#
# This module provides:
# - Live server configuration from environment variables
# - Failure message formatting
# - Authentication helpers for the seeded demo accounts
#
# The server must already be running with `flask system seed` applied.
# Every test is skipped when RENTMARKET_LIVE_URL is unset.

import os
from dataclasses import dataclass
from typing import Any, Dict, Generator, Optional

import httpx
import pytest


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class LiveConfig:
    """Live suite configuration with environment variable overrides."""
    backend_base_url: str = os.environ.get("RENTMARKET_LIVE_URL", "")
    request_timeout: float = float(os.environ.get("RENTMARKET_LIVE_TIMEOUT", "30"))
    demo_password: str = os.environ.get("RENTMARKET_DEMO_PASSWORD", "Password123!")


# =============================================================================
# FAILURE MESSAGE HELPER
# =============================================================================

class LiveFailure(Exception):
    """
    Exception with a readable failure report.

    Structure:
    1. Scenario: What was being tested
    2. Expected: What should have happened
    3. Actual: What actually happened
    4. Likely Cause: Most probable reason for failure
    """

    def __init__(
        self,
        scenario: str,
        expected: str,
        actual: str,
        likely_cause: str,
        response: Optional[httpx.Response] = None,
        extra_context: Optional[Dict[str, Any]] = None
    ):
        self.scenario = scenario
        self.expected = expected
        self.actual = actual
        self.likely_cause = likely_cause
        self.response = response
        self.extra_context = extra_context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        lines = [
            "",
            "=" * 80,
            "LIVE TEST FAILURE",
            "=" * 80,
            f"SCENARIO: {self.scenario}",
            f"EXPECTED: {self.expected}",
            f"ACTUAL: {self.actual}",
            f"LIKELY CAUSE: {self.likely_cause}",
        ]
        if self.response is not None:
            lines.extend([
                "-" * 80,
                f"HTTP STATUS: {self.response.status_code}",
                f"RESPONSE BODY: {self.response.text[:1000]}",
            ])
        for key, value in self.extra_context.items():
            lines.append(f"  {key}: {value}")
        lines.append("=" * 80)
        return "\n".join(lines)


def assert_response(response: httpx.Response, expected_status: int, scenario: str):
    """Raise LiveFailure when the status code differs."""
    if response.status_code != expected_status:
        raise LiveFailure(
            scenario=scenario,
            expected=f"HTTP {expected_status}",
            actual=f"HTTP {response.status_code}",
            likely_cause=_infer_cause(response),
            response=response,
        )


def _infer_cause(response: httpx.Response) -> str:
    if response.status_code == 401:
        return "Authentication failed - token invalid/missing or session expired"
    elif response.status_code == 403:
        return "Permission denied - role not allowed for this action"
    elif response.status_code == 404:
        return "Resource not found - wrong ID or not visible to this user"
    elif response.status_code == 400:
        return "Invalid request - missing required field or validation failed"
    elif response.status_code == 409:
        return "Conflict - stock shortfall, duplicate or business rule violation"
    elif response.status_code == 500:
        return "Server error - check backend logs for stack trace"
    return f"Unexpected status code {response.status_code}"


# =============================================================================
# HTTP CLIENT WITH AUTH HELPERS
# =============================================================================

class APIClient:
    """HTTP client wrapper that carries a bearer token."""

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(timeout=timeout)
        self.token: Optional[str] = None
        self.current_user: Optional[Dict] = None

    def _headers(self) -> Dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def get(self, path: str, params: Optional[Dict] = None) -> httpx.Response:
        return self.client.get(f"{self.base_url}{path}", headers=self._headers(), params=params)

    def post(self, path: str, json: Optional[Dict] = None) -> httpx.Response:
        return self.client.post(f"{self.base_url}{path}", headers=self._headers(), json=json)

    def login(self, email: str, password: str) -> bool:
        """Authenticate and store token."""
        response = self.post("/api/auth/login", json={"email": email, "password": password})
        if response.status_code == 200:
            data = response.json()
            self.token = data.get("token")
            self.current_user = data.get("user")
            return True
        return False

    def logout(self) -> bool:
        if not self.token:
            return True
        response = self.post("/api/auth/logout")
        if response.status_code == 200:
            self.token = None
            self.current_user = None
            return True
        return False

    def close(self):
        self.client.close()


# =============================================================================
# PYTEST FIXTURES
# =============================================================================

@pytest.fixture(scope="session")
def live_config() -> LiveConfig:
    config = LiveConfig()
    if not config.backend_base_url:
        pytest.skip("RENTMARKET_LIVE_URL is not set")
    return config


@pytest.fixture(scope="session")
def api_client(live_config: LiveConfig) -> Generator[APIClient, None, None]:
    client = APIClient(live_config.backend_base_url, timeout=live_config.request_timeout)
    yield client
    client.close()


@pytest.fixture
def client(api_client: APIClient) -> APIClient:
    """API client with any previous auth state cleared."""
    api_client.token = None
    api_client.current_user = None
    return api_client


def _login_or_fail(client: APIClient, email: str, password: str) -> APIClient:
    if not client.login(email, password):
        pytest.fail(f"Failed to login as {email}; was `flask system seed` run?")
    return client


@pytest.fixture
def customer_client(client: APIClient, live_config: LiveConfig) -> APIClient:
    return _login_or_fail(client, "customer@rental.com", live_config.demo_password)


@pytest.fixture
def vendor_client(client: APIClient, live_config: LiveConfig) -> APIClient:
    return _login_or_fail(client, "vendor@rental.com", live_config.demo_password)


@pytest.fixture
def admin_client(client: APIClient, live_config: LiveConfig) -> APIClient:
    return _login_or_fail(client, "admin@rental.com", live_config.demo_password)
