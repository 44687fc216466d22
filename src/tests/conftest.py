import os

import boto3
import pytest

from .utils import FakeIAMClient


def pytest_sessionstart(session):  # noqa: ANN201, ARG001, ANN001
    mock_env = {
        "log_level": "DEBUG",
        "page_size": "100",
        "retry_timeout_seconds": "5",
        "retry_initial_wait_seconds": "0.01",
        "retry_max_wait_seconds": "0.01",
        "retry_max_attempts": "3",
        "convergence_timeout_seconds": "5",
        "destroy_verification_timeout_seconds": "5",
        "apply_max_workers": "1",
    }
    os.environ |= mock_env

    boto3.setup_default_session(region_name="us-east-1")


@pytest.fixture
def iam_client():
    return FakeIAMClient(
        groups={"tf-acc-group": ["userOne"]},
        users={"userOne", "userTwo", "userThree"},
    )
