"""Core modules for uilocator."""

from uilocator.core.config import ConfigLoader, HierarchySettings, LocatorConfig
from uilocator.core.device_bridge import BridgeError, DeviceBridge
from uilocator.core.fingerprint import element_fingerprint, to_element_metadata
from uilocator.core.healing import HealingMatch, LocatorHealingEngine
from uilocator.core.hierarchy_controller import HierarchyController, HierarchyState
from uilocator.core.hierarchy_parser import parse_hierarchy, sanitize_hierarchy_xml
from uilocator.core.inspector import InspectionResult, Inspector
from uilocator.core.locator_scorer import DynamicTextRules, score_locator_candidates
from uilocator.core.point_resolver import resolve_at
from uilocator.core.retrieval_strategies import RetrievalError, RetrievalStrategy
from uilocator.core.xpath_builder import build_xpath_candidates, score_xpath_candidates

__all__ = [
    "BridgeError",
    "ConfigLoader",
    "DeviceBridge",
    "DynamicTextRules",
    "HealingMatch",
    "HierarchyController",
    "HierarchySettings",
    "HierarchyState",
    "InspectionResult",
    "Inspector",
    "LocatorConfig",
    "LocatorHealingEngine",
    "RetrievalError",
    "RetrievalStrategy",
    "build_xpath_candidates",
    "element_fingerprint",
    "parse_hierarchy",
    "resolve_at",
    "sanitize_hierarchy_xml",
    "score_locator_candidates",
    "score_xpath_candidates",
    "to_element_metadata",
]
