# ABOUTME: Shared test fixtures for the nimbus test suite.
# ABOUTME: Blocks real model requests and provides settings with zero-delay retries.

import pydantic_ai.models
import pytest

from nimbus.config import RetryPolicy, Settings

# Prevent accidental LLM calls during testing
pydantic_ai.models.ALLOW_MODEL_REQUESTS = False


@pytest.fixture
def settings() -> Settings:
    """Settings with both keys set and retries that never sleep."""
    return Settings(
        openrouter_api_key="test-openrouter-key",
        openweather_api_key="test-openweather-key",
        retry=RetryPolicy(max_attempts=3, base_delay=0, max_delay=0),
    )
