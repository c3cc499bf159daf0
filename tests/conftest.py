import sys
from pathlib import Path

import pytest

# Ensure the package is importable when tests run from a plain checkout
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from commentguard.moderation.domain import container
from commentguard.settings import settings


@pytest.fixture(autouse=True)
def force_test_settings():
    """Ensure a consistent test environment.

    Tests never reach a real classifier endpoint and always see the
    heuristic fallback enabled unless they opt out explicitly.
    """
    original_env = settings.environment
    original_account = settings.moderation_classifier_account_id
    original_token = settings.moderation_classifier_api_token
    original_fallback = settings.moderation_heuristic_fallback
    original_timeout = settings.moderation_classifier_timeout_seconds
    settings.environment = "dev"
    settings.moderation_classifier_account_id = None
    settings.moderation_classifier_api_token = None
    settings.moderation_heuristic_fallback = True
    settings.moderation_classifier_timeout_seconds = 5.0
    try:
        yield
    finally:
        settings.environment = original_env
        settings.moderation_classifier_account_id = original_account
        settings.moderation_classifier_api_token = original_token
        settings.moderation_heuristic_fallback = original_fallback
        settings.moderation_classifier_timeout_seconds = original_timeout


@pytest.fixture(autouse=True)
def reset_container():
    yield
    container._service = None
    container._http_client = None
