"""
Metrics Connector (Shared Library)
Provides configuration loading and time-series retrieval from the monitoring
agent API for capacity planning. Secrets and endpoints loaded from .env.
"""

import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
import yaml
import os
import logging
from typing import Dict, List, Optional, Any
from dotenv import load_dotenv

# Disable insecure https warnings (agents commonly use self-signed certs)
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger("MetricsConnector")

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), '..', 'capacity', 'config.yaml')

DEFAULT_METRICS_API = {
    'api_url': 'http://localhost:8080',
    'token': '',
    'endpoint': '/api/v1/mssql/database-size',
    'measurement': 'mssql_database',
    'timeout_seconds': 30,
    'retries': 3,
    'backoff_factor': 0.5,
    'verify_ssl': False,
}

DEFAULT_CAPACITY = {
    'min_samples': 7,
    'min_span_days': 1,
    'trend_threshold_mb': 5,
    'volatility_high': 0.10,
    'volatility_medium': 0.05,
    'high_growth_mb_per_day': 100,
    'rapid_data_growth_mb_per_day': 50,
    'rapid_log_growth_mb_per_day': 20,
    'tripling_factor': 3,
    'default_time_range': '30d',
}


class MetricsSourceError(Exception):
    """Raised when time-series data cannot be retrieved from the monitoring API."""


class ConfigLoader:
    @staticmethod
    def load_config(path: Optional[str] = None) -> dict:
        path = os.path.normpath(path or DEFAULT_CONFIG_PATH)

        config = {}
        if os.path.exists(path):
            with open(path, 'r') as f:
                config = yaml.safe_load(f) or {}
        else:
            logger.warning(f"Config file not found at {path}, using defaults")

        # Defaults first, YAML on top
        config['metrics_api'] = {**DEFAULT_METRICS_API, **(config.get('metrics_api') or {})}
        config['capacity'] = {**DEFAULT_CAPACITY, **(config.get('capacity') or {})}

        # Merge with .env variables (Env takes precedence for secrets)
        api = config['metrics_api']
        api['api_url'] = os.getenv('METRICS_API_URL', api['api_url'])
        api['token'] = os.getenv('METRICS_API_TOKEN', api['token'])
        if os.getenv('METRICS_VERIFY_SSL'):
            api['verify_ssl'] = os.getenv('METRICS_VERIFY_SSL').lower() in ('1', 'true', 'yes')

        return config


class MetricsConnector:
    def __init__(self, config: dict):
        self.config = config
        api = self.config['metrics_api']
        self.api_url = api['api_url'].rstrip('/')
        self.token = api.get('token')
        self.endpoint = api.get('endpoint', DEFAULT_METRICS_API['endpoint'])
        self.timeout = api.get('timeout_seconds', DEFAULT_METRICS_API['timeout_seconds'])
        self.verify_ssl = api.get('verify_ssl', False)
        self.session = self._build_session(
            api.get('retries', DEFAULT_METRICS_API['retries']),
            api.get('backoff_factor', DEFAULT_METRICS_API['backoff_factor'])
        )

    @staticmethod
    def _build_session(retries: int, backoff_factor: float) -> requests.Session:
        """Session that retries idempotent GETs on throttling and gateway errors."""
        retry = Retry(
            total=retries,
            backoff_factor=backoff_factor,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset(['GET']),
            raise_on_status=False
        )
        adapter = HTTPAdapter(max_retries=retry)
        session = requests.Session()
        session.mount('http://', adapter)
        session.mount('https://', adapter)
        return session

    def close(self):
        self.session.close()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def fetch_points(self, agent_id: str, database_name: str, time_range: str = "30d") -> List[Dict[str, Any]]:
        """
        Get raw time-series points for one database on one agent.
        Returns the list of {_field, _measurement, _time, _value, ...} records.
        """
        url = f"{self.api_url}{self.endpoint}"
        params = {"agent_id": agent_id, "database": database_name, "range": time_range}

        logger.info(f"Fetching size history for {database_name} on agent {agent_id} (range={time_range})")
        try:
            resp = self.session.get(url, headers=self._headers(), params=params,
                                    verify=self.verify_ssl, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Metrics API request failed: {e}")
            raise MetricsSourceError(f"Metrics API request failed: {e}") from e

        if resp.status_code != 200:
            raise MetricsSourceError(f"Metrics API returned HTTP {resp.status_code} for {database_name}")

        try:
            body = resp.json()
        except ValueError as e:
            raise MetricsSourceError("Metrics API returned a non-JSON body") from e

        return self.extract_points(body)

    @staticmethod
    def extract_points(body: Any) -> List[Dict[str, Any]]:
        """Unwrap both envelope formats: {data: [...]} and {data: {all_data: [...]}}."""
        if not isinstance(body, dict):
            raise MetricsSourceError("Unexpected metrics payload")

        status = body.get('status', 'success')
        if status != 'success':
            raise MetricsSourceError(body.get('message') or f"Metrics API status: {status}")

        data = body.get('data')
        if isinstance(data, list):
            return data
        if isinstance(data, dict) and isinstance(data.get('all_data'), list):
            return data['all_data']
        return []
