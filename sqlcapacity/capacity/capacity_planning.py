#!/usr/bin/env python3
"""
Database Capacity Planning: SQL Server Size Growth Analysis

Key Capabilities:
- Normalization of raw monitoring points (data_size / log_size) into per-timestamp samples
- Endpoint-to-endpoint daily growth rates for data and log files
- Half-split trend classification and coefficient-of-variation volatility
- 1 month / 3 months / 6 months / 1 year size predictions with confidence levels
- Rule-based recommendations
"""

import os
import sys
import re
import json
import logging
import math
from dataclasses import dataclass, asdict
from typing import List, Dict, Optional, Tuple, Any, Sequence, Union
from datetime import datetime, timezone

# Scientific computing
import numpy as np
import pandas as pd
from scipy import stats
from pydantic import BaseModel, Field, ValidationError, validator

# Add project root to path to allow running this file directly
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../../')))

from sqlcapacity.common.metrics_connector import ConfigLoader, MetricsConnector, MetricsSourceError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('CapacityPlanning')

# =============================================================================
# CONFIGURATION
# =============================================================================

CONFIG = ConfigLoader.load_config()

# Data Quality Thresholds
MIN_SAMPLES = CONFIG['capacity']['min_samples']
MIN_SPAN_DAYS = CONFIG['capacity']['min_span_days']

# Classification Thresholds
TREND_THRESHOLD_MB = CONFIG['capacity']['trend_threshold_mb']
VOLATILITY_HIGH = CONFIG['capacity']['volatility_high']
VOLATILITY_MEDIUM = CONFIG['capacity']['volatility_medium']

# Recommendation Triggers
HIGH_GROWTH_MB_PER_DAY = CONFIG['capacity']['high_growth_mb_per_day']
RAPID_DATA_GROWTH_MB_PER_DAY = CONFIG['capacity']['rapid_data_growth_mb_per_day']
RAPID_LOG_GROWTH_MB_PER_DAY = CONFIG['capacity']['rapid_log_growth_mb_per_day']
TRIPLING_FACTOR = CONFIG['capacity']['tripling_factor']

DEFAULT_TIME_RANGE = CONFIG['capacity']['default_time_range']
MEASUREMENT = CONFIG['metrics_api']['measurement']

BYTES_PER_MB = 1024 * 1024
MS_PER_DAY = 86_400_000

SIZE_FIELDS = ('data_size', 'log_size')

STABLE_MESSAGE = "Database growth appears stable and predictable."


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class TimeSample:
    """One size observation for a database (sizes in bytes, timestamp in epoch ms)"""
    timestamp: int
    data_size: Optional[float] = None
    log_size: Optional[float] = None

    @property
    def total_size(self) -> Optional[float]:
        if self.data_size is None or self.log_size is None:
            return None
        return self.data_size + self.log_size


@dataclass(frozen=True)
class PredictionHorizon:
    """Forecast horizon and the history span needed to trust it"""
    period: str
    days: int
    min_span_days: float
    level_if_met: str
    level_otherwise: str


# Short horizons are never "low", long horizons are never "high"
PREDICTION_HORIZONS = (
    PredictionHorizon("1 Month", 30, 7, "high", "medium"),
    PredictionHorizon("3 Months", 90, 14, "high", "medium"),
    PredictionHorizon("6 Months", 180, 30, "medium", "low"),
    PredictionHorizon("1 Year", 365, 30, "medium", "low"),
)


@dataclass(frozen=True)
class CapacityPrediction:
    period: str
    data_size_mb: float
    log_size_mb: float
    total_size_mb: float
    growth_rate_data: float
    growth_rate_log: float
    confidence_level: str


@dataclass(frozen=True)
class TrendAnalysis:
    data_trend: str
    log_trend: str
    volatility: str


@dataclass(frozen=True)
class CapacityAnalysis:
    """Complete capacity analysis results"""
    # Current snapshot
    current_data_size_mb: float
    current_log_size_mb: float
    current_total_size_mb: float

    # Growth (MB/day, negative means shrinking)
    daily_growth_data_mb: float
    daily_growth_log_mb: float
    daily_growth_total_mb: float

    predictions: Tuple[CapacityPrediction, ...]
    trend_analysis: TrendAnalysis
    recommendations: Tuple[str, ...]

    # Quality
    sample_count: int
    time_span_days: float
    first_timestamp: int
    last_timestamp: int
    fit_r_squared: float


@dataclass(frozen=True)
class InsufficientData:
    """Not enough history to forecast yet (expected for newly monitored databases)"""
    reason: str
    sample_count: int
    time_span_days: Optional[float] = None


# =============================================================================
# SAMPLE NORMALIZER
# =============================================================================

def _to_epoch_ms(value: Any) -> Optional[int]:
    """Parse an ISO string, datetime or epoch-ms number into epoch milliseconds"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, np.integer, np.floating)):
        if not math.isfinite(value):
            return None
        return int(value)
    try:
        ts = pd.to_datetime(value, utc=True)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    return int(ts.value // 1_000_000)


class SampleNormalizer:
    """Group raw monitoring points into per-timestamp TimeSample records"""

    @staticmethod
    def to_samples(points: Sequence[Dict[str, Any]], database_name: Optional[str] = None,
                   host: Optional[str] = None, measurement: str = MEASUREMENT) -> List[TimeSample]:
        if not points:
            return []

        df = pd.DataFrame(list(points))
        if not {'_field', '_time', '_value'}.issubset(df.columns):
            logger.warning("Metrics points are missing _field/_time/_value, nothing to normalize")
            return []

        if '_measurement' in df.columns:
            df = df[df['_measurement'] == measurement]
        df = df[df['_field'].isin(SIZE_FIELDS)]

        # Keep a single database / node when the points are tagged.
        # A point matches if any database tag it carries names the database
        tags = [tag for tag in ('database', 'database_name') if tag in df.columns]
        if database_name and tags:
            mask = pd.Series(False, index=df.index)
            for tag in tags:
                mask |= df[tag] == database_name
            df = df[mask]
        if host and 'host' in df.columns:
            df = df[df['host'] == host]

        if df.empty:
            return []

        df = df.assign(
            timestamp=df['_time'].map(_to_epoch_ms),
            value=pd.to_numeric(df['_value'], errors='coerce')
        )

        unparsed = int(df['timestamp'].isna().sum())
        if unparsed > 0:
            logger.warning(f"Dropping {unparsed} points with unparseable timestamps")
            df = df.dropna(subset=['timestamp'])
            if df.empty:
                return []

        df['timestamp'] = df['timestamp'].astype('int64')

        # Last reported value wins for duplicate (timestamp, field) pairs
        pivot = (
            df.groupby(['timestamp', '_field'], sort=True)['value']
            .last()
            .unstack('_field')
            .reindex(columns=list(SIZE_FIELDS))
            .sort_index()
        )

        samples = []
        for ts, row in pivot.iterrows():
            samples.append(TimeSample(
                timestamp=int(ts),
                data_size=None if pd.isna(row['data_size']) else float(row['data_size']),
                log_size=None if pd.isna(row['log_size']) else float(row['log_size'])
            ))
        return samples


# =============================================================================
# GROWTH ANALYZER
# =============================================================================

def _bytes_to_mb(value: Any) -> float:
    """Bytes to MB, missing or malformed values count as 0"""
    if value is None:
        return 0.0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return value / BYTES_PER_MB


def _sort_key(sample: TimeSample) -> Tuple[float, float, float]:
    return (sample.timestamp, _bytes_to_mb(sample.data_size), _bytes_to_mb(sample.log_size))


class GrowthAnalyzer:
    """Core engine: trend, volatility, predictions and recommendations for one database"""

    def __init__(self, min_samples: int = MIN_SAMPLES, min_span_days: float = MIN_SPAN_DAYS,
                 trend_threshold_mb: float = TREND_THRESHOLD_MB,
                 volatility_high: float = VOLATILITY_HIGH, volatility_medium: float = VOLATILITY_MEDIUM,
                 high_growth_mb_per_day: float = HIGH_GROWTH_MB_PER_DAY,
                 rapid_data_growth_mb_per_day: float = RAPID_DATA_GROWTH_MB_PER_DAY,
                 rapid_log_growth_mb_per_day: float = RAPID_LOG_GROWTH_MB_PER_DAY,
                 tripling_factor: float = TRIPLING_FACTOR):
        self.min_samples = min_samples
        self.min_span_days = min_span_days
        self.trend_threshold_mb = trend_threshold_mb
        self.volatility_high = volatility_high
        self.volatility_medium = volatility_medium
        self.high_growth_mb_per_day = high_growth_mb_per_day
        self.rapid_data_growth_mb_per_day = rapid_data_growth_mb_per_day
        self.rapid_log_growth_mb_per_day = rapid_log_growth_mb_per_day
        self.tripling_factor = tripling_factor

    def classify_trend(self, values_mb: np.ndarray) -> str:
        """Compare the averages of the first and second half of the series"""
        mid = len(values_mb) // 2
        if mid == 0:
            return "stable"

        first_avg = np.mean(values_mb[:mid])
        second_avg = np.mean(values_mb[mid:])

        if second_avg > first_avg + self.trend_threshold_mb:
            return "increasing"
        elif second_avg < first_avg - self.trend_threshold_mb:
            return "decreasing"
        else:
            return "stable"

    def classify_volatility(self, values_mb: np.ndarray) -> str:
        """Coefficient of variation (population std / mean) of the data size"""
        mean = np.mean(values_mb)
        std = np.std(values_mb)
        coefficient = std / mean if mean != 0 else 0.0

        if coefficient > self.volatility_high:
            return "high"
        elif coefficient > self.volatility_medium:
            return "medium"
        else:
            return "low"

    @staticmethod
    def confidence_for(horizon: PredictionHorizon, time_span_days: float) -> str:
        if time_span_days > horizon.min_span_days:
            return horizon.level_if_met
        return horizon.level_otherwise

    @staticmethod
    def fit_r_squared(days: np.ndarray, total_mb: np.ndarray) -> float:
        """Quality of a least-squares line through total size; informational only"""
        if np.ptp(total_mb) == 0 or np.ptp(days) == 0:
            return 0.0
        result = stats.linregress(days, total_mb)
        r_squared = float(result.rvalue ** 2)
        return r_squared if math.isfinite(r_squared) else 0.0

    def build_recommendations(self, daily_growth_data_mb: float, daily_growth_log_mb: float,
                              daily_growth_total_mb: float, trends: TrendAnalysis,
                              current_total_size_mb: float, one_year_total_mb: float) -> List[str]:
        recommendations = []

        if daily_growth_total_mb > self.high_growth_mb_per_day:
            recommendations.append(
                f"High growth rate detected: {daily_growth_total_mb:.2f} MB/day. "
                f"Review capacity planning for this database."
            )

        if trends.data_trend == "increasing" and daily_growth_data_mb > self.rapid_data_growth_mb_per_day:
            recommendations.append(
                f"Data file is growing rapidly ({daily_growth_data_mb:.2f} MB/day). "
                f"Review data retention, archiving and index maintenance."
            )

        if trends.log_trend == "increasing" and daily_growth_log_mb > self.rapid_log_growth_mb_per_day:
            recommendations.append(
                f"Transaction log is growing rapidly ({daily_growth_log_mb:.2f} MB/day). "
                f"Consider more frequent log backups."
            )

        if trends.volatility == "high":
            recommendations.append(
                "Database size is highly volatile. Predictions may be less reliable."
            )

        if daily_growth_total_mb < 0:
            recommendations.append(
                f"Database size is decreasing ({daily_growth_total_mb:.2f} MB/day). "
                f"Verify whether this is due to archiving or cleanup operations."
            )

        if one_year_total_mb > self.tripling_factor * current_total_size_mb:
            recommendations.append(
                "Database is projected to more than triple in size within a year. "
                "Plan storage expansion."
            )

        if not recommendations:
            recommendations.append(STABLE_MESSAGE)

        return recommendations

    def analyze(self, samples: Sequence[TimeSample]) -> Union[CapacityAnalysis, InsufficientData]:
        samples = sorted(samples, key=_sort_key)
        n = len(samples)

        if n < self.min_samples:
            logger.warning(f"Only {n} samples available (min {self.min_samples} required)")
            return InsufficientData(
                reason=f"Only {n} samples available (min {self.min_samples} required)",
                sample_count=n
            )

        first_ts = samples[0].timestamp
        last_ts = samples[-1].timestamp
        time_span_days = (last_ts - first_ts) / MS_PER_DAY

        if time_span_days < self.min_span_days:
            logger.warning(f"History spans {time_span_days:.2f} days (min {self.min_span_days} required)")
            return InsufficientData(
                reason=f"History spans {time_span_days:.2f} days (min {self.min_span_days} required)",
                sample_count=n,
                time_span_days=time_span_days
            )

        data_mb = np.array([_bytes_to_mb(s.data_size) for s in samples], dtype=float)
        log_mb = np.array([_bytes_to_mb(s.log_size) for s in samples], dtype=float)

        # Current snapshot
        current_data = float(data_mb[-1])
        current_log = float(log_mb[-1])
        current_total = current_data + current_log

        # Endpoint-to-endpoint daily rates
        daily_growth_data = (current_data - float(data_mb[0])) / time_span_days
        daily_growth_log = (current_log - float(log_mb[0])) / time_span_days
        daily_growth_total = daily_growth_data + daily_growth_log

        trends = TrendAnalysis(
            data_trend=self.classify_trend(data_mb),
            log_trend=self.classify_trend(log_mb),
            volatility=self.classify_volatility(data_mb)
        )

        predictions = tuple(
            CapacityPrediction(
                period=horizon.period,
                data_size_mb=max(0.0, current_data + daily_growth_data * horizon.days),
                log_size_mb=max(0.0, current_log + daily_growth_log * horizon.days),
                total_size_mb=max(0.0, current_total + daily_growth_total * horizon.days),
                growth_rate_data=daily_growth_data,
                growth_rate_log=daily_growth_log,
                confidence_level=self.confidence_for(horizon, time_span_days)
            )
            for horizon in PREDICTION_HORIZONS
        )

        recommendations = self.build_recommendations(
            daily_growth_data, daily_growth_log, daily_growth_total, trends,
            current_total, predictions[-1].total_size_mb
        )

        days = np.array([(s.timestamp - first_ts) / MS_PER_DAY for s in samples], dtype=float)

        logger.info(
            f"Analyzed {n} samples over {time_span_days:.1f} days: "
            f"{daily_growth_total:.2f} MB/day, data {trends.data_trend}, log {trends.log_trend}"
        )

        return CapacityAnalysis(
            current_data_size_mb=current_data,
            current_log_size_mb=current_log,
            current_total_size_mb=current_total,
            daily_growth_data_mb=daily_growth_data,
            daily_growth_log_mb=daily_growth_log,
            daily_growth_total_mb=daily_growth_total,
            predictions=predictions,
            trend_analysis=trends,
            recommendations=tuple(recommendations),
            sample_count=n,
            time_span_days=time_span_days,
            first_timestamp=int(first_ts),
            last_timestamp=int(last_ts),
            fit_r_squared=self.fit_r_squared(days, data_mb + log_mb)
        )


# =============================================================================
# REPORT FORMATTING
# =============================================================================

def format_size_mb(size_mb: float) -> str:
    """Human readable size from MB"""
    if abs(size_mb) >= 1024 * 1024:
        return f"{size_mb / (1024 * 1024):.2f} TB"
    if abs(size_mb) >= 1024:
        return f"{size_mb / 1024:.2f} GB"
    return f"{size_mb:.2f} MB"


def _epoch_ms_to_iso(ts: int) -> str:
    return datetime.fromtimestamp(ts / 1000, tz=timezone.utc).isoformat()


def analysis_to_dict(analysis: CapacityAnalysis) -> Dict[str, Any]:
    """JSON-ready representation of a CapacityAnalysis"""
    return {
        "current": {
            "data_size_mb": round(analysis.current_data_size_mb, 2),
            "log_size_mb": round(analysis.current_log_size_mb, 2),
            "total_size_mb": round(analysis.current_total_size_mb, 2),
            "data_size_display": format_size_mb(analysis.current_data_size_mb),
            "log_size_display": format_size_mb(analysis.current_log_size_mb),
            "total_size_display": format_size_mb(analysis.current_total_size_mb)
        },
        "daily_growth": {
            "data_mb": round(analysis.daily_growth_data_mb, 2),
            "log_mb": round(analysis.daily_growth_log_mb, 2),
            "total_mb": round(analysis.daily_growth_total_mb, 2)
        },
        "predictions": [
            {
                "period": p.period,
                "data_size_mb": round(p.data_size_mb, 2),
                "log_size_mb": round(p.log_size_mb, 2),
                "total_size_mb": round(p.total_size_mb, 2),
                "total_size_display": format_size_mb(p.total_size_mb),
                "growth_rate_data": round(p.growth_rate_data, 2),
                "growth_rate_log": round(p.growth_rate_log, 2),
                "confidence_level": p.confidence_level
            }
            for p in analysis.predictions
        ],
        "trend_analysis": asdict(analysis.trend_analysis),
        "recommendations": list(analysis.recommendations),
        "quality": {
            "sample_count": analysis.sample_count,
            "time_span_days": round(analysis.time_span_days, 2),
            "first_sample": _epoch_ms_to_iso(analysis.first_timestamp),
            "last_sample": _epoch_ms_to_iso(analysis.last_timestamp),
            "fit_r_squared": round(analysis.fit_r_squared, 4)
        }
    }


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================

class CapacityPlanningInput(BaseModel):
    agent_id: str = Field(min_length=1)
    database_name: str = Field(min_length=1)
    time_range: str = DEFAULT_TIME_RANGE

    @validator('time_range')
    def validate_time_range(cls, v):
        if not re.match(r'^\d+[mhdw]$', v):
            raise ValueError(f"time_range must look like '30d', '12h' or '4w', got '{v}'")
        return v


class CapacityPlanner:
    """Fetch, normalize and analyze size history for databases on an agent"""

    def __init__(self, connector=None, analyzer: Optional[GrowthAnalyzer] = None, config: Optional[Dict] = None):
        self.config = config or CONFIG
        self.connector = connector or MetricsConnector(self.config)
        self.analyzer = analyzer or GrowthAnalyzer(
            min_samples=self.config['capacity']['min_samples'],
            min_span_days=self.config['capacity']['min_span_days'],
            trend_threshold_mb=self.config['capacity']['trend_threshold_mb'],
            volatility_high=self.config['capacity']['volatility_high'],
            volatility_medium=self.config['capacity']['volatility_medium'],
            high_growth_mb_per_day=self.config['capacity']['high_growth_mb_per_day'],
            rapid_data_growth_mb_per_day=self.config['capacity']['rapid_data_growth_mb_per_day'],
            rapid_log_growth_mb_per_day=self.config['capacity']['rapid_log_growth_mb_per_day'],
            tripling_factor=self.config['capacity']['tripling_factor']
        )
        self.normalizer = SampleNormalizer()
        self.measurement = self.config['metrics_api'].get('measurement', MEASUREMENT)

    def plan(self, agent_id: str, database_name: str, time_range: Optional[str] = None) -> Dict[str, Any]:
        """Analyze a single database"""
        try:
            request = CapacityPlanningInput(
                agent_id=agent_id,
                database_name=database_name,
                time_range=time_range or self.config['capacity']['default_time_range']
            )
        except ValidationError as e:
            return {"status": "error", "message": f"Invalid request: {e}"}

        base = {
            "agent_id": request.agent_id,
            "database_name": request.database_name,
            "time_range": request.time_range
        }

        try:
            points = self.connector.fetch_points(request.agent_id, request.database_name, request.time_range)
        except MetricsSourceError as e:
            logger.error(f"Failed to fetch size history for {request.database_name}: {e}")
            return {**base, "status": "error", "message": str(e)}

        samples = self.normalizer.to_samples(points, database_name=request.database_name,
                                             measurement=self.measurement)
        result = self.analyzer.analyze(samples)

        if isinstance(result, InsufficientData):
            return {
                **base,
                "status": "insufficient_data",
                "message": "Not enough history to forecast capacity yet.",
                "reason": result.reason,
                "sample_count": result.sample_count,
                "time_span_days": result.time_span_days
            }

        return {
            **base,
            "status": "success",
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "analysis": analysis_to_dict(result)
        }

    def plan_many(self, agent_id: str, database_names: Sequence[str], time_range: Optional[str] = None) -> Dict[str, Any]:
        """Analyze several databases, one failure does not stop the others"""
        reports = {}
        summary = {"analyzed": 0, "insufficient_data": 0, "failed": 0}

        for name in database_names:
            try:
                logger.info(f"Analyzing {name}...")
                report = self.plan(agent_id, name, time_range)
            except Exception as e:
                logger.error(f"Failed to analyze {name}: {e}", exc_info=True)
                report = {"database_name": name, "status": "error", "message": str(e)}

            reports[name] = report
            if report["status"] == "success":
                summary["analyzed"] += 1
            elif report["status"] == "insufficient_data":
                summary["insufficient_data"] += 1
            else:
                summary["failed"] += 1

        logger.info(f"Capacity planning complete - {summary['analyzed']} of {len(reports)} databases analyzed")
        return {"status": "success", "agent_id": agent_id, "databases": reports, "summary": summary}


# =============================================================================
# ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    if len(sys.argv) < 3:
        print("Usage: python -m sqlcapacity.capacity.capacity_planning AGENT_ID DATABASE [RANGE]")
        sys.exit(1)

    planner = CapacityPlanner()
    report = planner.plan(sys.argv[1], sys.argv[2], sys.argv[3] if len(sys.argv) > 3 else None)
    print(json.dumps(report, indent=2, default=str))
