"""Provider catalog rules and detection."""

from .detection import ProviderResolver, detect_provider
from .rules import DetectionContext, eval_rule, parse_rule

__all__ = ["ProviderResolver", "detect_provider", "DetectionContext", "eval_rule", "parse_rule"]
