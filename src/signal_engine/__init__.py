"""
Options signal decision engine.

Turns raw trading signals into ENTER / REJECT decisions with a confidence
score and a position size, opens positions for accepted signals, and decides
when open positions should exit.

Entry point for wiring: signal_engine.bootstrap.build_pipeline
"""

__version__ = "0.1.0"
