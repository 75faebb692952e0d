"""Shared test fixtures."""

from __future__ import annotations

import threading
import time
from collections.abc import Generator
from concurrent.futures import ThreadPoolExecutor

import pytest

from fakes import FakeDatabase, StaticCollector
from switchboard.health.aggregator import HealthAggregator
from switchboard.health.reducer import ResourceThresholds
from switchboard.health.report import ReportAssembler


@pytest.fixture
def release() -> Generator[threading.Event, None, None]:
    """Event that unblocks BlockingProbe threads at teardown."""
    event = threading.Event()
    yield event
    event.set()


@pytest.fixture
def executor() -> Generator[ThreadPoolExecutor, None, None]:
    """Worker pool that is not joined at teardown, so stuck tasks cannot stall a test."""
    pool = ThreadPoolExecutor(max_workers=8)
    yield pool
    pool.shutdown(wait=False)


@pytest.fixture
def assembler() -> ReportAssembler:
    return ReportAssembler(
        version="1.0.0",
        environment="test",
        thresholds=ResourceThresholds(),
        boot_time=lambda: time.time() - 7300,
    )


@pytest.fixture
def make_aggregator(assembler: ReportAssembler):
    """Factory for aggregators over scripted probes; closes them at teardown."""
    created: list[HealthAggregator] = []

    def _make(probes, collector=None, db=None, fast_probes=None, probe_budget=1.0, metrics_budget=0.5):
        aggregator = HealthAggregator(
            probes=probes,
            fast_probes=fast_probes,
            collector=collector or StaticCollector(),
            assembler=assembler,
            db=db if db is not None else FakeDatabase(),
            probe_budget=probe_budget,
            metrics_budget=metrics_budget,
        )
        created.append(aggregator)
        return aggregator

    yield _make
    for aggregator in created:
        aggregator.close()
