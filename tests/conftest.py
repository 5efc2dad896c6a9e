from datetime import datetime, timezone

import pytest

from attack_patterns.config import Settings
from attack_patterns.engine import AttackPatternEngine


@pytest.fixture
def settings():
    return Settings(_env_file=None, ENVIRONMENT="testing", FINGERPRINT_SECRET="test-secret")


@pytest.fixture
def engine(settings):
    return AttackPatternEngine(settings)


@pytest.fixture
def base_time():
    return datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def types_of(violations):
    return [v.type for v in violations]
