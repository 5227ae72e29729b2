"""
Access evaluation package.

- models: EntitlementState snapshot, flag parsing, request/response models.
- evaluator: Ordered approval -> trial -> allow-list decision.
- catalog: Teacher dashboard features, sections and URL paths.
"""

from .evaluator import EntitlementEvaluator
from .models import EntitlementState

__all__ = ["EntitlementEvaluator", "EntitlementState"]
