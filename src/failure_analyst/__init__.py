"""Failure Analyst - resumable ReAct / Tree-of-Thought root-cause analysis."""

__version__ = "0.1.0"
