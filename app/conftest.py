import pytest


@pytest.fixture(autouse=True)
def _kafka_disabled(settings):
    # No broker in tests; individual tests opt back in with a mocked client
    settings.KAFKA_ENABLED = False
