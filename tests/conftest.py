"""
Pytest configuration file

Adds the project root to the Python path so tests can import modules,
and provides helpers for building size histories.
"""
import sys
import os

import pytest

# Add the project root to the path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from sqlcapacity.capacity.capacity_planning import TimeSample

DAY_MS = 86_400_000
BASE_TS = 1_700_000_000_000
GB = 1024 ** 3
MB = 1024 ** 2


def build_samples(data_sizes, log_sizes, step_days=1.0, start=BASE_TS):
    """One TimeSample per (data, log) pair, step_days apart."""
    return [
        TimeSample(timestamp=start + int(round(i * step_days * DAY_MS)), data_size=d, log_size=l)
        for i, (d, l) in enumerate(zip(data_sizes, log_sizes))
    ]


def build_points(history, database="SalesDB", host="SQL-PROD-01", measurement="mssql_database"):
    """Raw monitoring points from (epoch_ms, data_size, log_size) tuples."""
    points = []
    for ts, data_size, log_size in history:
        for field, value in (("data_size", data_size), ("log_size", log_size)):
            if value is None:
                continue
            points.append({
                "_measurement": measurement,
                "_field": field,
                "_time": ts,
                "_value": value,
                "agent_id": "agent-1",
                "database": database,
                "host": host
            })
    return points


@pytest.fixture
def make_samples():
    return build_samples


@pytest.fixture
def make_points():
    return build_points
