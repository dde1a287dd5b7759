"""Prometheus metrics for the catalog harvester."""

from prometheus_client import Counter, Histogram, Info

# Application info
app_info = Info("catalog_harvester", "Catalog harvester application info")
app_info.info({"version": "0.1.0", "name": "catalog-harvester"})

# Request metrics
harvest_requests_total = Counter(
    "harvest_requests_total",
    "Total number of category harvest requests",
    ["status"],
)

harvest_duration_seconds = Histogram(
    "harvest_duration_seconds",
    "Time spent harvesting one category page",
    buckets=[5.0, 15.0, 30.0, 60.0, 120.0, 240.0, 360.0, 600.0],
)

# Capture metrics
captured_products_total = Counter(
    "captured_products_total",
    "Products normalized from intercepted payloads",
    ["channel"],
)

merged_products_total = Counter(
    "merged_products_total",
    "Products emitted by reconciliation",
    ["source"],
)

# Scroll metrics
scroll_cycles_total = Counter(
    "scroll_cycles_total",
    "Total number of scroll cycles executed",
)

scroll_terminations_total = Counter(
    "scroll_terminations_total",
    "Scroll controller terminations",
    ["reason"],
)


def record_harvest(success: bool, duration: float):
    """Record a finished harvest request."""
    status = "success" if success else "error"
    harvest_requests_total.labels(status=status).inc()
    harvest_duration_seconds.observe(duration)


def record_captured(channel: str, count: int):
    """Record products captured on an interception channel."""
    if count > 0:
        captured_products_total.labels(channel=channel).inc(count)


def record_merge(matched: int, dom_only: int, appended: int):
    """Record reconciliation output by source."""
    merged_products_total.labels(source="matched").inc(matched)
    merged_products_total.labels(source="dom_only").inc(dom_only)
    merged_products_total.labels(source="api_only").inc(appended)


def record_scroll_termination(reason: str, cycles: int):
    """Record how a scroll session ended."""
    scroll_terminations_total.labels(reason=reason).inc()
    scroll_cycles_total.inc(cycles)
