"""
Analysis Lab
============

Tabular statistics and machine-learning walkthroughs packaged as a small,
reusable toolkit: variance-based feature filtering, Excel-style aggregation
formulas, topic-count selection for LDA by divergence scoring, and a
gradient-boosting classification pipeline.

Subpackages:
------------
- core: data loading, feature selection, aggregation, parameter sweeps,
  topic selection, classification, reporting and orchestration
- ui: Streamlit widgets and page handlers

Usage:
------
    from analysis_lab.core import data_manager
    from analysis_lab.core.report_orchestrator import AnalysisConfig, run_analysis
"""

__version__ = "1.0.0"

__all__ = [
    'core',
    'ui',
]
