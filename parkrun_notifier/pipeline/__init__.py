"""
Scrape-and-notify pipeline.
"""

from parkrun_notifier.pipeline.orchestrator import PipelineOrchestrator, build_pipeline

__all__ = ["PipelineOrchestrator", "build_pipeline"]
