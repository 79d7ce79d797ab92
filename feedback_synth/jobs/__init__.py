"""
Background Jobs for Feedback Synth.

- reprocess_sweep: Periodic retry of feedback left unprocessed
"""

from .reprocess_sweep import reprocess_unprocessed, run_reprocess_job

__all__ = ["reprocess_unprocessed", "run_reprocess_job"]
