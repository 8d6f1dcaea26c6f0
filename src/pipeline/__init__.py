"""
Three-phase legal due-diligence pipeline.

Phases:
1. phase1: Per-document quick scan, windowed concurrency (BatchScheduler)
2. phase2: Sequential per-category deep analysis (CategoryAnalyzer)
3. phase3: Single synthesis call (Synthesizer)

The orchestrator runs them in order and owns the PipelineState.

Usage:
    from src.pipeline import run_legal_analysis_pipeline

    state = asyncio.run(run_legal_analysis_pipeline(request))
"""
from .cancellation import CancellationToken
from .grouped import GroupAnalysisResult, GroupAnalyzer
from .orchestrator import (
    LegalAnalysisPipeline,
    PipelineCallbacks,
    get_pipeline_summary,
    run_legal_analysis_pipeline,
)
from .persistence import save_pipeline_results
from .phase1 import BatchScheduler, Phase1Processor, group_by_category
from .phase2 import CategoryAnalyzer
from .phase3 import Synthesizer, majority_jurisdiction

__all__ = [
    'CancellationToken',
    'LegalAnalysisPipeline',
    'PipelineCallbacks',
    'run_legal_analysis_pipeline',
    'get_pipeline_summary',
    'Phase1Processor',
    'BatchScheduler',
    'group_by_category',
    'CategoryAnalyzer',
    'Synthesizer',
    'majority_jurisdiction',
    'GroupAnalyzer',
    'GroupAnalysisResult',
    'save_pipeline_results',
]
