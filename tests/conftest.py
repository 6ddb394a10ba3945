import pytest

from src.services.insight_models import TestDetails

from tests.factories import make_test_record


@pytest.fixture
def test_details():
    return TestDetails.from_record(make_test_record())
