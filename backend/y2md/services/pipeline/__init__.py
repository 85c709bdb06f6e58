"""
Pipeline module for transcript processing.

This package contains the decomposed pipeline components:
- orchestrator: End-to-end processing of one video
- source_selector: Captions -> speech recognition chain
- formatting_orchestrator: LLM -> standard formatting chain
- provider_registry: Provider configuration and selection
- fallback_chain: Ordered fallback combinator shared by both chains

Example:
    from y2md.services.pipeline import TranscriptPipeline, ProcessOptions

    async with TranscriptPipeline.create(settings, app_config) as pipeline:
        result = await pipeline.process(url, ProcessOptions.from_config(app_config))

    # Formatting only
    from y2md.services.pipeline import FormattingOrchestrator

    async with FormattingOrchestrator(registry, credentials, settings) as formatter:
        outcome = await formatter.format(text, use_llm=True)
"""

from .fallback_chain import FallbackExhausted, Strategy, StrategyResult, first_successful
from .formatting_orchestrator import FormattingOrchestrator
from .orchestrator import (
    PipelineError,
    ProcessOptions,
    TranscriptPipeline,
)
from .provider_registry import ProviderInfo, ProviderRegistry
from .source_selector import TranscriptSourceSelector

__all__ = [
    # Main pipeline
    "TranscriptPipeline",
    "ProcessOptions",
    "PipelineError",
    # Fallback chains
    "TranscriptSourceSelector",
    "FormattingOrchestrator",
    "Strategy",
    "StrategyResult",
    "FallbackExhausted",
    "first_successful",
    # Provider selection
    "ProviderRegistry",
    "ProviderInfo",
]
