"""
SQL Server Capacity Planning MCP Server
=======================================

MCP Server that exposes database size growth analysis through standardized tools.
Size history is pulled from the monitoring agent API, analyzed by
capacity/capacity_planning.py and returned as structured JSON for AI assistants.

Tools:
- get_database_capacity_planning: one database on one agent
- get_capacity_planning_for_databases: several databases on one agent
- simulate_capacity_scenario: canned histories for demonstration
"""

import logging
import json
import os
import sys
from typing import Optional
from mcp.server.fastmcp import FastMCP
from dotenv import load_dotenv

load_dotenv()

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from sqlcapacity.capacity.capacity_planning import CapacityPlanner, DEFAULT_TIME_RANGE
from sqlcapacity.demo.simulator import run_simulation

# =============================================================================
# CONFIGURATION
# =============================================================================

# Log to stderr to keep stdout clean for the MCP protocol
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr
)
logger = logging.getLogger("sqlcapacity_mcp")

# Initialize MCP Server
mcp = FastMCP("sqlcapacity")


# One planner (and HTTP session) shared by every tool call
_planner: Optional[CapacityPlanner] = None


def get_planner() -> CapacityPlanner:
    global _planner
    if _planner is None:
        _planner = CapacityPlanner()
    return _planner


# =============================================================================
# CAPACITY PLANNING
# =============================================================================

@mcp.tool()
async def get_database_capacity_planning(agent_id: str, database_name: str, time_range: str = DEFAULT_TIME_RANGE) -> str:
    """
    Analyze size growth for one SQL Server database and forecast its size.

    PRESENTATION STYLE GUIDE:
    ------------------------
    Use a **Capacity Card** format:

    **[Database] - [Total Size]**
    - Growth: [total MB/day] (data [trend], log [trend], volatility [level])
    - Forecast table: Period | Total Size | Confidence
    - Recommendations as a bullet list

    If status is "insufficient_data", explain that the database needs at least
    7 samples spanning one day before a forecast is possible.

    Args:
        agent_id: Monitoring agent identifier (e.g., "agent-sql-01")
        database_name: Database to analyze (e.g., "SalesDB")
        time_range: Lookback window (default: 30d)

    Returns:
        JSON string containing current sizes, daily growth, predictions,
        trend analysis and recommendations.
    """
    try:
        result = get_planner().plan(agent_id, database_name, time_range)
        return json.dumps(result, indent=2, default=str)
    except Exception as e:
        logger.error(f"Error in get_database_capacity_planning: {e}", exc_info=True)
        return json.dumps({
            "status": "error",
            "error": str(e),
            "message": "Failed to perform capacity planning."
        }, indent=2)


@mcp.tool()
async def get_capacity_planning_for_databases(agent_id: str, database_names: str, time_range: str = DEFAULT_TIME_RANGE) -> str:
    """
    Analyze size growth for several databases on the same agent.

    Args:
        agent_id: Monitoring agent identifier
        database_names: Comma separated database names (e.g., "SalesDB,OrdersDB")
        time_range: Lookback window (default: 30d)

    Returns:
        JSON string with a report per database and a summary of
        analyzed / insufficient_data / failed counts.
    """
    try:
        names = [n.strip() for n in database_names.split(',') if n.strip()]
        if not names:
            return json.dumps({"status": "error", "message": "No database names given."}, indent=2)
        result = get_planner().plan_many(agent_id, names, time_range)
        return json.dumps(result, indent=2, default=str)
    except Exception as e:
        logger.error(f"Error in get_capacity_planning_for_databases: {e}", exc_info=True)
        return json.dumps({"status": "error", "message": str(e)}, indent=2)


# =============================================================================
# DEMO: CAPACITY SIMULATION
# =============================================================================

@mcp.tool()
async def simulate_capacity_scenario(scenario: str) -> str:
    """
    Run capacity planning against a canned size history.

    Use this to DEMONSTRATE capabilities without a live monitoring agent.

    Args:
        scenario: 'stable', 'rapid_data_growth', 'log_growth',
                  'missing_log_values', 'shrinking' or 'new_database'.
    """
    try:
        result = run_simulation(scenario)
        return json.dumps(result, indent=2, default=str)
    except Exception as e:
        logger.error(f"Error in simulation: {e}", exc_info=True)
        return json.dumps({"status": "error", "message": str(e)}, indent=2)


if __name__ == "__main__":
    logger.info("=" * 70)
    logger.info("SQL Server Capacity Planning MCP Server")
    logger.info("=" * 70)
    logger.info("Tools: get_database_capacity_planning, get_capacity_planning_for_databases, simulate_capacity_scenario")
    logger.info("-" * 70)

    try:
        mcp.run()
    finally:
        if _planner is not None:
            _planner.connector.close()
