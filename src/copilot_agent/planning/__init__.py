"""Planning oracle client."""

from .oracle import JsonExtraction, PlanOracle, extract_json

__all__ = ["JsonExtraction", "PlanOracle", "extract_json"]
