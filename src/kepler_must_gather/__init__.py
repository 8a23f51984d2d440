"""Must-gather collector for the Kepler operator, its exporter and user-workload monitoring."""

__version__ = "0.1.0"
