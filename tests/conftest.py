"""Shared fixtures for the print shop test suites.

Every test gets a fresh temp-file SQLite DatabaseManager, so tests never
share catalog, order or settings state.
"""
import os
import shutil
import tempfile
from datetime import date

import pytest

from business.service import PrintShopService
from database import DatabaseManager
from database.models import Catalog
from database.order_repos import TransitionPolicy
from interface.base import Event, Observer
from interface.manager import EventBroadcaster


class RecordingObserver(Observer):
    """Observer that keeps every delivered event in memory."""

    def __init__(self, name: str = "recorder"):
        super().__init__(name)
        self.events = []

    def deliver(self, event: Event):
        self.events.append(event)

    @property
    def names(self):
        return [event.name for event in self.events]


def make_order_payload(**overrides):
    """Helper: a valid order submission, with optional field overrides."""
    payload = {
        "customer_first_name": "Ada",
        "customer_last_name": "Lovelace",
        "customer_phone": "555-0100",
        "customer_email": "ada@example.com",
        "customer_address": "12 Analytical Way",
        "pickup_date": "2024-01-28",
        "pickup_time": "10:30",
        "copies": 2,
        "paper_size": 'Letter (8.5" x 11")',
        "paper_type": "Glossy",
        "color_mode": "Color",
        "double_sided": True,
        "estimated_price": 1.25,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def temp_db():
    """Yield a fresh DatabaseManager bound to a temp SQLite database."""
    temp_dir = tempfile.mkdtemp(prefix="print-shop-tests-")
    db_path = os.path.join(temp_dir, "test.db")
    manager = DatabaseManager(
        database_url=f"sqlite:///{db_path}",
        default_price=0.10,
        atomic_expansion=True,
        transition_policy=TransitionPolicy(),
    )
    manager.create_tables()

    try:
        yield manager
    finally:
        manager.close()
        shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def small_catalog(temp_db):
    """Two sizes x two types x two colour modes (eight combinations)."""
    ids = {}
    for catalog, names in (
        (Catalog.PAPER_SIZE, ["Letter", "A4"]),
        (Catalog.PAPER_TYPE, ["Standard", "Glossy"]),
        (Catalog.COLOR_MODE, ["Black & White", "Color"]),
    ):
        ids[catalog] = [
            temp_db.options.add_option(catalog, name, sort_order=index).id
            for index, name in enumerate(names, start=1)
        ]
    return ids


@pytest.fixture
def recorder():
    return RecordingObserver()


@pytest.fixture
def broadcaster(recorder):
    broadcaster = EventBroadcaster()
    broadcaster.register(recorder)
    return broadcaster


@pytest.fixture
def service(temp_db, broadcaster):
    return PrintShopService(temp_db, broadcaster)


@pytest.fixture
def today():
    """Stable 'today' for board decoration tests."""
    return date(2024, 1, 28)
