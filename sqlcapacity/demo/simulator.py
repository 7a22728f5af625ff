"""
Capacity Planning Simulator
Runs the full capacity planning pipeline (fetch -> normalize -> analyze) using Mock Data.
Simulates monitoring API responses without touching real infrastructure.
"""

import sys
import os
import json
import logging

# Add project root
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../../')))

from sqlcapacity.demo.mock_data import get_scenarios
from sqlcapacity.capacity.capacity_planning import CapacityPlanner

logger = logging.getLogger("Simulator")


class MockConnector:
    def __init__(self, scenario=None):
        self.scenario = scenario
        self.calls = []

    def set_scenario(self, scenario_data):
        self.scenario = scenario_data

    def fetch_points(self, agent_id, database_name, time_range="30d"):
        self.calls.append((agent_id, database_name, time_range))
        if database_name != self.scenario["database"]:
            return []
        return list(self.scenario["points"])


def run_simulation(scenario_key: str):
    """
    Run capacity planning for one canned scenario.
    Scenarios: 'stable', 'rapid_data_growth', 'log_growth', 'missing_log_values', 'shrinking', 'new_database'
    """
    data = get_scenarios()

    if scenario_key not in data:
        return {"status": "error", "message": f"Unknown scenario: {scenario_key}. Available: {list(data.keys())}"}

    s = data[scenario_key]
    logger.info(f"Simulating scenario '{scenario_key}': {s['description']}")

    planner = CapacityPlanner(connector=MockConnector(s))
    report = planner.plan(s["agent_id"], s["database"])

    return {
        "simulation_scenario": s["description"],
        "report": report
    }


if __name__ == "__main__":
    # Self-test
    for key in get_scenarios():
        print(json.dumps(run_simulation(key), indent=2))
