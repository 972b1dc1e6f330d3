# ui/__init__.py
from . import components
from .display_handlers import (
    analysis_pages,
    render_aggregation_page,
    render_classification_page,
    render_dataset_overview,
    render_result,
    render_topics_page,
    render_variance_page,
)
from .diagnostics_ui import render_sidebar_diagnostics

__all__ = [name for name in dir() if not name.startswith("_")]
