from __future__ import annotations

import pytest

from minik8s.providers.docker import Docker, DockerClusterProvider
from tests.fakes import FakeDocker, FakeProvider


@pytest.fixture
def fake_docker() -> FakeDocker:
    return FakeDocker()


@pytest.fixture
def docker_config() -> Docker:
    return Docker(pull_attempts=1)


@pytest.fixture
def provider(docker_config: Docker, fake_docker: FakeDocker) -> DockerClusterProvider:
    return DockerClusterProvider(docker_config, fake_docker)  # type: ignore[arg-type]


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()
