"""
Observability module for the stamp engine.

This module provides:
- Metrics collection with Prometheus
"""

__all__ = ["metrics"]
