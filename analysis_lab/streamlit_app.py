# streamlit_app.py
# ----------------
# Analysis Lab front end: load a table, then run one analysis per tab.
#
#   streamlit run analysis_lab/streamlit_app.py

from __future__ import annotations

from typing import Any, Dict, Optional

import pandas as pd
import streamlit as st

from analysis_lab.core import data_manager
from analysis_lab.core.report_orchestrator import AnalysisConfig
from analysis_lab.ui import components as C
from analysis_lab.ui import display_handlers as DH
from analysis_lab.ui import diagnostics_ui as DUI


# ----------------------------
# Streamlit config
# ----------------------------

st.set_page_config(
    page_title="Analysis Lab",
    page_icon="📊",
    layout="wide",
)

C.render_app_header(
    "Analysis Lab",
    "Variance filtering · Excel-style aggregation · LDA topic-count selection · gradient boosting.",
)

# ----------------------------
# Sidebar: configuration & diagnostics
# ----------------------------

with st.sidebar:
    st.markdown("### ⚙️ Configuration")
    output_dir = st.text_input("Output directory", value="outputs/reports")
    n_jobs = st.number_input("Parallel jobs (n_jobs, -1 = all CPUs)", min_value=-1, max_value=64, value=1, step=1)
    random_state = st.number_input("Random seed", min_value=0, value=0, step=1)
    generate_pdf = st.checkbox("Generate PDF report", value=False)

    page_style: Dict[str, Any] = {}
    with st.expander("Page style (advanced)", expanded=False):
        margin = st.number_input("Margin (mm)", min_value=8.0, max_value=25.0, value=16.0, step=0.5)
        dpi = st.number_input("Figure DPI", min_value=72, max_value=600, value=150, step=10)
        page_style["margin_mm"] = float(margin)
        page_style["figure_dpi"] = int(dpi)

DUI.render_sidebar_diagnostics(output_dir=output_dir)

base_cfg = AnalysisConfig(
    output_dir=output_dir,
    n_jobs=int(n_jobs) if n_jobs != 0 else 1,
    random_state=int(random_state),
    generate_pdf=bool(generate_pdf),
    page_style=page_style,
)


# ----------------------------
# Dataset
# ----------------------------

@st.cache_data(show_spinner=False)
def _load_bytes_cache(data: bytes) -> pd.DataFrame:
    return data_manager.load_table(data)


@st.cache_data(show_spinner=False)
def _load_path_cache(path: str) -> pd.DataFrame:
    return data_manager.load_table(path)


@st.cache_data(show_spinner=False)
def _load_builtin_cache(name: str) -> pd.DataFrame:
    return data_manager.load_builtin_dataset(name)


source = st.radio("Data source", ["Upload", "File path", "Bundled dataset"], horizontal=True)

df: Optional[pd.DataFrame] = None
try:
    if source == "Upload":
        raw = C.file_uploader_card()
        if raw is not None:
            df = _load_bytes_cache(raw)
    elif source == "File path":
        path = st.text_input("CSV / Excel path", value="", placeholder="/path/to/table.xlsx")
        if path.strip():
            df = _load_path_cache(path.strip())
    else:
        name = st.selectbox("Dataset", ["iris", "wine", "breast_cancer", "diabetes"])
        df = _load_builtin_cache(name)
except Exception as e:
    C.error(f"Failed to load dataset: {e}")
    df = None

if df is not None:
    C.success(f"Loaded {len(df):,} rows.")

st.divider()
DH.render_dataset_overview(df)

# ----------------------------
# Analyses
# ----------------------------

if df is not None:
    st.divider()
    tabs = st.tabs([f"🧪 {name}" for name in DH.analysis_pages()])
    with tabs[0]:
        DH.render_variance_page(df, base_cfg)
    with tabs[1]:
        DH.render_aggregation_page(df, base_cfg)
    with tabs[2]:
        DH.render_topics_page(df, base_cfg)
    with tabs[3]:
        DH.render_classification_page(df, base_cfg)
