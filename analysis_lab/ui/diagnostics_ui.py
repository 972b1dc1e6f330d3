"""
ui/diagnostics_ui.py
--------------------
Lightweight diagnostics panel (intended for the Streamlit **sidebar**).

Responsibilities
- Check that the output directory exists (create it on demand) and is writable
- Show versions of the numerical libraries the analyses rely on
- Report the CPU count so users can pick a sensible n_jobs
"""

from __future__ import annotations

import os
from importlib.metadata import PackageNotFoundError, version as _pkg_version
from typing import Any, Dict

import streamlit as st

_LIBRARIES = ("pandas", "numpy", "scikit-learn", "scipy", "joblib", "matplotlib", "reportlab")


# ----------------------------
# Cached loaders
# ----------------------------

@st.cache_resource(show_spinner=False)
def _cached_versions() -> Dict[str, str]:
    out: Dict[str, str] = {}
    for pkg in _LIBRARIES:
        try:
            out[pkg] = _pkg_version(pkg)
        except PackageNotFoundError:
            out[pkg] = "not installed"
    return out


# ----------------------------
# Public rendering
# ----------------------------

def render_sidebar_diagnostics(*, output_dir: str = "outputs/reports") -> Dict[str, Any]:
    """
    Render a compact diagnostics block in the sidebar.
    Returns the collected diagnostics.
    """
    st.sidebar.markdown("### 🔎 Diagnostics")

    writable = _path_badge("Output dir", output_dir, create_if_missing=True)

    versions = _cached_versions()
    st.sidebar.markdown("**Libraries**")
    st.sidebar.caption(", ".join(f"{k} {v}" for k, v in versions.items()))

    cpus = os.cpu_count() or 1
    st.sidebar.caption(f"CPUs available for n_jobs: {cpus}")

    missing = [k for k, v in versions.items() if v == "not installed"]
    if missing:
        st.sidebar.warning("Missing libraries: " + ", ".join(missing) +
                           ". Install with `pip install -e .`", icon="⚠️")

    return {"output_writable": writable, "versions": versions, "cpus": cpus}


# ----------------------------
# Helpers
# ----------------------------

def _path_badge(label: str, path: str, create_if_missing: bool = False) -> bool:
    if create_if_missing and not os.path.isdir(path):
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as e:
            st.sidebar.error(f"{label}: cannot create `{path}` ({e})", icon="❌")
            return False
    ok = os.path.isdir(path) and os.access(path, os.W_OK)
    if ok:
        st.sidebar.success(f"{label}: `{path}`", icon="✅")
    else:
        st.sidebar.error(f"{label}: `{path}` is not writable", icon="❌")
    return ok
