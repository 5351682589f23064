"""
Analysis package: explain-output parsing, scan classification and efficiency
scoring.
"""

from perflab.analysis.plan_analyzer import analyze_plan, assess_efficiency, classify_stage

__all__ = ["analyze_plan", "assess_efficiency", "classify_stage"]
