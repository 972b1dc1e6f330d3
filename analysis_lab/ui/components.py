"""
ui/components.py
----------------
Small, reusable Streamlit UI widgets and layout helpers.
Keep these presentational and state-light; business logic lives in core/ and ui/display_handlers.py.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
import streamlit as st


# ----------------------------
# Layout & Headers
# ----------------------------

def render_app_header(title: str, subtitle: Optional[str] = None, icon: str = "📊") -> None:
    """
    Render the app header with a subtle subtitle.
    """
    st.markdown(f"## {icon} {title}")
    if subtitle:
        st.caption(subtitle)
    st.divider()


def section(title: str, help_text: Optional[str] = None) -> None:
    """
    Section heading with optional help tooltip.
    """
    st.markdown(f"### {title}")
    if help_text:
        st.caption(help_text)


def sub_section(title: str) -> None:
    st.markdown(f"**{title}**")


# ----------------------------
# Alerts & Status
# ----------------------------

def info(msg: str) -> None:
    st.info(msg, icon="ℹ️")


def warning(msg: str) -> None:
    st.warning(msg, icon="⚠️")


def error(msg: str) -> None:
    st.error(msg, icon="❌")


def success(msg: str) -> None:
    st.success(msg, icon="✅")


def messages_expander(title: str, messages: Sequence[str], expanded: bool = False) -> None:
    if not messages:
        return
    with st.expander(title, expanded=expanded):
        for m in messages:
            st.write("• " + str(m))


# ----------------------------
# Dataset Widgets
# ----------------------------

def file_uploader_card(key: str = "table_upload", label: str = "Upload a CSV or Excel file") -> Optional[bytes]:
    """
    Returns file bytes or None. Do not parse here; pass bytes to core.data_manager.load_table.
    """
    st.markdown("#### Dataset")
    uploaded = st.file_uploader(label, type=["csv", "tsv", "txt", "xlsx", "xls"], key=key)
    if uploaded is not None:
        st.caption(
            f"Selected: `{uploaded.name}` · {uploaded.size/1024:.1f} KB")
        return uploaded.getvalue()
    return None


def dataset_metrics_tiles(summary: Dict[str, Any]) -> None:
    """
    Show a compact row of dataset metrics.
    Expects keys from core.data_manager.summarize_dataset.
    """
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Rows", f"{summary.get('n_rows', 0):,}")
    c2.metric("Columns", f"{summary.get('n_cols', 0):,}")
    c3.metric("Numeric", f"{len(summary.get('numeric_cols', [])):,}")
    c4.metric("Categorical / Text",
              f"{len(summary.get('categorical_cols', []))} / {len(summary.get('text_cols', []))}")


def column_selector(columns: List[str], label: str, key: str, default: Optional[str] = None) -> Optional[str]:
    """
    Return the chosen column or None if the list is empty.
    """
    if not columns:
        warning(f"No columns available for: {label}")
        return None
    idx = columns.index(default) if default in columns else 0
    return st.selectbox(label, columns, index=idx, key=key)


def int_list_input(label: str, default: Sequence[int], key: str) -> List[int]:
    """Comma-separated integers, e.g. '2, 4, 6'. Invalid tokens are reported and skipped."""
    raw = st.text_input(label, value=", ".join(str(v) for v in default), key=key)
    values: List[int] = []
    for tok in raw.split(","):
        tok = tok.strip()
        if not tok:
            continue
        try:
            values.append(int(tok))
        except ValueError:
            warning(f"Ignoring '{tok}': not an integer.")
    return values


# ----------------------------
# Actions & Progress
# ----------------------------

def run_button(label: str = "Run analysis", key: str = "run") -> bool:
    return st.button(label, type="primary", key=key)


class Progress:
    """
    Lightweight progress/phase indicator:
        with Progress() as pg:
            pg.update(0.1, "Loading data")
            ...
            pg.update(1.0, "Done")
    """

    def __init__(self, key: str = "pg"):
        self._bar = None
        self._text = None
        self._key = key

    def __enter__(self):
        self._bar = st.progress(0, text="Starting…")
        self._text = st.empty()
        return self

    def update(self, fraction: float, message: str) -> None:
        fraction = max(0.0, min(1.0, float(fraction)))
        if self._bar is not None:
            self._bar.progress(fraction, text=message)
        if self._text is not None:
            self._text.caption(message)

    def __exit__(self, exc_type, exc, tb):
        if self._bar is not None:
            self._bar.empty()
        if self._text is not None:
            self._text.empty()


# ----------------------------
# Results & Downloads
# ----------------------------

def summary_metrics(summary: Dict[str, Any]) -> None:
    """Show the scalar entries of a run summary as metric tiles."""
    scalars = [(k, v) for k, v in summary.items() if isinstance(v, (int, float, str)) and v is not None]
    if not scalars:
        return
    cols = st.columns(min(len(scalars), 4))
    for i, (k, v) in enumerate(scalars):
        shown = f"{v:.4g}" if isinstance(v, float) else str(v)
        cols[i % len(cols)].metric(k.replace("_", " ").title(), shown)


def timings_table(timings: Dict[str, float]) -> None:
    if not timings:
        return
    st.markdown("**Timings (s)**")
    rows = "\n".join([f"- {k}: `{v:.2f}`" for k, v in timings.items()])
    st.markdown(rows)


def csv_download_button(df: pd.DataFrame, file_name: str, label: str = "Download CSV", key: Optional[str] = None) -> None:
    st.download_button(label, data=df.to_csv(index=False).encode("utf-8"),
                       file_name=file_name, mime="text/csv", key=key)


def file_download_button(path: Optional[str], label: str, mime: str, key: Optional[str] = None) -> None:
    """
    Renders a download button if the file exists.
    """
    if not path:
        return
    p = Path(path)
    if not p.exists():
        error(f"File not found at: {path}")
        return
    with p.open("rb") as f:
        st.download_button(label, data=f.read(), file_name=p.name, mime=mime, key=key)
