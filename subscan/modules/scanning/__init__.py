"""Misconfiguration detection: signatures, finding pipeline and scoring."""

from subscan.modules.scanning.pipeline import FindingPipeline
from subscan.modules.scanning.scorer import HostScorer, ScoreBreakdown, sort_results
from subscan.modules.scanning.signatures import DEFAULT_SIGNATURES, SignatureTables
from subscan.modules.scanning.takeover import TakeoverDetector

__all__ = [
    "FindingPipeline",
    "HostScorer",
    "ScoreBreakdown",
    "sort_results",
    "DEFAULT_SIGNATURES",
    "SignatureTables",
    "TakeoverDetector",
]
