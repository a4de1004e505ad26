from dashboard.routers import health, signals, statistics

__all__ = ["health", "signals", "statistics"]
