"""
Signal pipeline: normalization and the stage handler chain.
"""

from signal_engine.execution.normalizer import SignalNormalizer
from signal_engine.execution.pipeline import ExitResult, PipelineResult, SignalPipeline

__all__ = ['SignalNormalizer', 'SignalPipeline', 'PipelineResult', 'ExitResult']
