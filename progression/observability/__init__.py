"""
Observability module for the progression engine.

This module provides:
- Metrics collection with Prometheus
"""

__all__ = ["metrics"]
