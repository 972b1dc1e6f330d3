"""
Core Analysis Package
=====================

This package contains the analysis logic behind the notebooks and the
Streamlit front end. Heavy numerical work is delegated to pandas,
scikit-learn and scipy; the modules here are the glue around them.

Modules:
--------
- data_manager: CSV/Excel loading, validation, row filtering and summaries
- feature_selection: variance-threshold feature filter
- aggregation: Excel-style COUNTIF/SUMIFS/AVERAGEIFS/MAXIFS formulas
- parameter_sweep: parallel fit-and-score harness over one parameter
- topic_selection: LDA topic-count selection by divergence metrics
- classification: gradient-boosting classification pipeline
- report_generator: figures and PDF summaries
- report_orchestrator: runs one analysis end to end

Usage:
------
from analysis_lab.core import data_manager
from analysis_lab.core.feature_selection import VarianceFilter
from analysis_lab.core.parameter_sweep import run_sweep
from analysis_lab.core.report_orchestrator import AnalysisConfig, run_analysis
"""

__version__ = "1.0.0"

# Package metadata
__all__ = [
    'data_manager',
    'feature_selection',
    'aggregation',
    'parameter_sweep',
    'topic_selection',
    'classification',
    'report_generator',
    'report_orchestrator',
]
