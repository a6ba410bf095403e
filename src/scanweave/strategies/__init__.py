"""Multi-pass execution strategies layered on the execution engine."""

from scanweave.strategies.merge import (
    MergeStrategy,
    ScanPass,
    merge_pass_results,
    merge_sarif_documents,
    reduce_exit_codes,
)
from scanweave.strategies.phased import (
    BASELINE_TEMPLATES,
    DISCOVERY_TEMPLATES,
    TECH_TEMPLATE_TABLE,
    PhasedOutcome,
    PhasedStrategy,
    PhasePlan,
    detect_technologies,
    normalize_target_url,
    select_deep_templates,
)

__all__ = [
    "BASELINE_TEMPLATES",
    "DISCOVERY_TEMPLATES",
    "TECH_TEMPLATE_TABLE",
    "MergeStrategy",
    "PhasePlan",
    "PhasedOutcome",
    "PhasedStrategy",
    "ScanPass",
    "detect_technologies",
    "merge_pass_results",
    "merge_sarif_documents",
    "normalize_target_url",
    "reduce_exit_codes",
    "select_deep_templates",
]
