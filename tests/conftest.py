"""Pytest configuration and fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from etlcore.connectors.memory import MemoryAdapter, MemoryStore, memory_adapter_factory
from etlcore.etl.pipeline import Orchestrator
from etlcore.security.credentials import Vault


class FakeClock:
    """Monotonic clock advanced by the sleeps it is paired with."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def vault() -> Vault:
    """Vault with one credential of each kind."""
    return Vault(
        {
            "local": {"type": "api_key", "credentials": {"api_key": "local-key"}},
            "db": {
                "type": "basic",
                "credentials": {"username": "etl", "password": "pw", "port": 5432},
            },
        }
    )


@pytest.fixture
def contacts() -> list[dict[str, Any]]:
    """Five contact records."""
    return [
        {"id": 1, "first": "Ada", "last": "Lovelace", "email": "ADA@EXAMPLE.COM", "age": "36"},
        {"id": 2, "first": "Alan", "last": "Turing", "email": "alan@example.com", "age": "41"},
        {"id": 3, "first": "Grace", "last": "Hopper", "email": "grace@example.com", "age": "85"},
        {"id": 4, "first": "Edsger", "last": "Dijkstra", "email": "ed@example.com", "age": "72"},
        {"id": 5, "first": "Barbara", "last": "Liskov", "email": "bl@example.com", "age": "n/a"},
    ]


@pytest.fixture
def store(contacts: list[dict[str, Any]]) -> MemoryStore:
    return MemoryStore({"contacts": contacts})


class AdapterSpy:
    """Memory adapter factory remembering every instance it builds."""

    def __init__(self, store: MemoryStore) -> None:
        self._factory = memory_adapter_factory(store)
        self.instances: list[MemoryAdapter] = []

    def __call__(self, connector, credential) -> MemoryAdapter:
        adapter = self._factory(connector, credential)
        self.instances.append(adapter)
        return adapter


@pytest.fixture
def memory_spy(store: MemoryStore) -> AdapterSpy:
    return AdapterSpy(store)


@pytest.fixture
def orchestrator(vault: Vault, memory_spy: AdapterSpy, clock: FakeClock) -> Orchestrator:
    """Orchestrator wired to the memory adapter and a fake clock."""
    return Orchestrator(
        vault,
        adapters={"memory": memory_spy},
        sleep=clock.sleep,
        clock=clock,
    )


def make_connector(**overrides: Any) -> dict[str, Any]:
    """Raw memory connector reading the contacts dataset."""
    connector = {
        "id": "contacts-source",
        "adapter_id": "memory",
        "endpoint_id": "records",
        "credential_id": "local",
        "config": {"dataset": "contacts"},
    }
    connector.update(overrides)
    return connector
