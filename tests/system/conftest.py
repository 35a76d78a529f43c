import os
import secrets
import string
from dataclasses import dataclass
from typing import Iterator

import boto3
import pytest


def _rand_suffix(n: int = 8) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(n))


def pytest_collection_modifyitems(config, items):
    if os.environ.get("RUN_SYSTEM") == "1":
        return
    skip = pytest.mark.skip(reason="system tests require RUN_SYSTEM=1")
    for item in items:
        if item.nodeid.startswith("tests/system/"):
            item.add_marker(skip)


@dataclass(frozen=True)
class SystemEnv:
    aws_profile: str
    aws_region: str
    stack_name: str


@pytest.fixture(scope="session")
def system_env() -> SystemEnv:
    # Require explicit opt-in.
    if os.environ.get("RUN_SYSTEM") != "1":
        pytest.skip("set RUN_SYSTEM=1 to run system tests")

    aws_profile = (os.environ.get("SYSTEM_AWS_PROFILE") or os.environ.get("AWS_PROFILE") or "").strip()
    aws_region = (os.environ.get("SYSTEM_AWS_REGION") or os.environ.get("AWS_REGION") or "").strip()
    stack_name = (os.environ.get("SYSTEM_STACK_NAME") or "").strip()

    if not aws_profile:
        raise RuntimeError("missing required env var: AWS_PROFILE (or SYSTEM_AWS_PROFILE)")
    if not aws_region:
        raise RuntimeError("missing required env var: AWS_REGION (or SYSTEM_AWS_REGION)")

    return SystemEnv(aws_profile=aws_profile, aws_region=aws_region, stack_name=stack_name)


@pytest.fixture(scope="session")
def system_session(system_env: SystemEnv) -> boto3.session.Session:
    return boto3.session.Session(profile_name=system_env.aws_profile, region_name=system_env.aws_region)


@pytest.fixture
def system_prefix(system_session: boto3.session.Session) -> Iterator[str]:
    prefix = f"/ses-creds-system/{_rand_suffix()}"
    yield prefix
    ssm = system_session.client("ssm")
    # delete_parameters reports missing names instead of raising.
    ssm.delete_parameters(Names=[f"{prefix}/username", f"{prefix}/password"])
