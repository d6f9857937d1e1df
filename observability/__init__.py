# Observability module
from .logging_config import configure_logging, get_logger
from .metrics import MetricsClient, RegistryMetricsClient, get_metrics_client, set_metrics_client

__all__ = [
    "MetricsClient",
    "RegistryMetricsClient",
    "get_metrics_client",
    "set_metrics_client",
    "configure_logging",
    "get_logger",
]
