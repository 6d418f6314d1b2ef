"""
Observability for eirinix.

- logging: structured JSON logging with correlation IDs
- metrics: Prometheus metrics for admission decisions
"""

from .logging import setup_structured_logging
from .metrics import METRICS_REGISTRY, record_admission

__all__ = ["METRICS_REGISTRY", "record_admission", "setup_structured_logging"]
