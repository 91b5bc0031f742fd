"""
Prometheus metrics for run orchestration.

Tracks run lifecycle outcomes, image pulls and cleanup so a scrape of the
local API shows how runs are behaving.
"""

from prometheus_client import Counter, Gauge, Histogram

# Run lifecycle
runs_started_total = Counter(
    "runs_started_total",
    "Total number of runs submitted",
    labelnames=["run_type"],
)

runs_finished_total = Counter(
    "runs_finished_total",
    "Total number of runs that reached a terminal state",
    labelnames=["status"],
)

runs_active = Gauge(
    "runs_active",
    "Runs currently acquiring images or executing",
)

# Image acquisition
image_pulls_total = Counter(
    "image_pulls_total",
    "Total number of settled image pulls",
    labelnames=["outcome"],
)

image_acquisition_duration_seconds = Histogram(
    "image_acquisition_duration_seconds",
    "Time from issuing pulls until every pull settled",
    buckets=[1, 5, 15, 30, 60, 120, 300, 600],
)

# Cleanup
run_cleanups_total = Counter(
    "run_cleanups_total",
    "Staged file releases by outcome",
    labelnames=["outcome"],
)
