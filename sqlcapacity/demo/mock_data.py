"""
Mock Data for Capacity Planning Simulation.
Defines database size histories as raw monitoring points for demonstration.
"""
from datetime import datetime, timedelta, timezone

GB = 1024 ** 3
MB = 1024 ** 2


def _points(agent_id, database, host, history, now):
    """Expand (offset_days, data_size, log_size) tuples into raw monitoring points."""
    points = []
    for offset_days, data_size, log_size in history:
        ts = (now + timedelta(days=offset_days)).strftime("%Y-%m-%dT%H:%M:%SZ")
        for field, value in (("data_size", data_size), ("log_size", log_size)):
            if value is None:
                continue
            points.append({
                "_measurement": "mssql_database",
                "_field": field,
                "_time": ts,
                "_value": value,
                "agent_id": agent_id,
                "database": database,
                "host": host
            })
    return points


def get_scenarios():
    now = datetime.now(timezone.utc).replace(microsecond=0)

    scenarios = {
        "stable": {
            "description": "Mature OLTP database with flat data and log sizes.",
            "agent_id": "agent-sql-01",
            "database": "SalesDB",
            "host": "SQL-PROD-01",
            "history": [(d - 9, 1_000_000_000, 100_000_000) for d in range(10)]
        },

        "rapid_data_growth": {
            "description": "Data file doubling from 1 GB to 2 GB in nine days.",
            "agent_id": "agent-sql-01",
            "database": "TelemetryDB",
            "host": "SQL-PROD-01",
            "history": [(d - 9, GB + d * GB / 9, 256 * MB) for d in range(10)]
        },

        "log_growth": {
            "description": "Transaction log growing from 0.5 GB to 1.5 GB without log backups.",
            "agent_id": "agent-sql-02",
            "database": "OrdersDB",
            "host": "SQL-PROD-02",
            "history": [(-7.5 + i * 7.5 / 7, 4 * GB, 0.5 * GB + i * GB / 7) for i in range(8)]
        },

        "missing_log_values": {
            "description": "Slowly growing database where the agent skipped three log size readings.",
            "agent_id": "agent-sql-02",
            "database": "InventoryDB",
            "host": "SQL-PROD-02",
            "history": [
                (d - 9, 2 * GB + d * 10 * MB, None if d in (2, 5, 7) else 200 * MB)
                for d in range(10)
            ]
        },

        "shrinking": {
            "description": "Archive job purging history from a reporting database.",
            "agent_id": "agent-sql-03",
            "database": "ReportingDB",
            "host": "SQL-RPT-01",
            "history": [(d - 13, 5 * GB - d * 40 * MB, 300 * MB) for d in range(14)]
        },

        "new_database": {
            "description": "Database added to monitoring four days ago.",
            "agent_id": "agent-sql-03",
            "database": "OnboardingDB",
            "host": "SQL-RPT-01",
            "history": [(d - 3, 500 * MB, 50 * MB) for d in range(4)]
        }
    }

    for s in scenarios.values():
        s["points"] = _points(s["agent_id"], s["database"], s["host"], s["history"], now)

    return scenarios
