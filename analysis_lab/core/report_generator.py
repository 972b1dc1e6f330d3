"""
Figures and PDF summaries for analysis runs
===========================================

This module renders the tables and plots each analysis produces and can
bundle them into a short PDF.

Features:
- Variance bar chart with the threshold line
- Metric curves across a parameter sweep, best value highlighted
- Confusion-matrix heatmap and feature-importance bars
- reportlab PDF built from heading/text/table/figure sections
- Simple validation to catch empty PDFs
"""

import datetime as dt
import logging
import os
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns

# ReportLab imports
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Image, PageBreak, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class ReportStyle:
    """Style configuration for analysis reports."""

    def __init__(self, **overrides: Any):
        # Page settings
        self.page_size = A4
        self.margin_mm = 16.0

        # Typography
        self.font_name = "Helvetica"
        self.title_size = 18
        self.heading_size = 14
        self.body_size = 10
        self.small_size = 8

        self.palette = {
            "primary": "#2E86AB",
            "secondary": "#A23B72",
            "success": "#4ECDC4",
            "warning": "#F18F01",
            "danger": "#C73E1D",
            "text": "#212529",
            "background": "#FFFFFF",
            "grid": "#E9ECEF"
        }

        # Figure settings
        self.figure_dpi = 150
        self.figure_width = 7.0
        self.figure_height = 4.5

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise ValueError(f"Unknown ReportStyle option: {key}")
            setattr(self, key, value)


class ReportGenerator:
    """
    Renders analysis figures to PNG and assembles PDF summaries.
    """

    def __init__(self, output_dir: str = "outputs/reports",
                 figures_dir: Optional[str] = None,
                 style: Optional[ReportStyle] = None):
        """
        Args:
            output_dir: Directory for generated PDFs
            figures_dir: Directory for PNGs (defaults to <output_dir>/figures)
            style: Optional style configuration
        """
        self.output_dir = output_dir
        self.figures_dir = figures_dir or os.path.join(output_dir, "figures")
        self.style = style or ReportStyle()

        os.makedirs(self.output_dir, exist_ok=True)
        os.makedirs(self.figures_dir, exist_ok=True)

        logger.info(f"ReportGenerator initialized: {self.output_dir}")

    # ----------------------------
    # Figures
    # ----------------------------

    def plot_variances(self, variance_table: pd.DataFrame, threshold: float,
                       name: str = "variances", top_n: int = 40) -> str:
        """Bar chart of per-feature variance; dropped features in the alert colour."""
        table = variance_table.head(top_n)
        fig, ax = plt.subplots(figsize=(self.style.figure_width, self.style.figure_height))

        if table.empty:
            self._empty_axis(ax, "No numeric features")
        else:
            bar_colors = [self.style.palette["primary"] if k else self.style.palette["danger"]
                          for k in table["kept"]]
            ax.bar(table["feature"].astype(str), table["variance"].fillna(0.0),
                   color=bar_colors, edgecolor="black", alpha=0.85)
            ax.axhline(threshold, color=self.style.palette["warning"], linestyle="--",
                       label=f"threshold = {threshold:g}")
            ax.set_ylabel("Variance")
            ax.tick_params(axis="x", rotation=75, labelsize=7)
            ax.legend()
        ax.set_title("Feature variance")

        return self._save(fig, name)

    def plot_sweep(self, frame: pd.DataFrame, value_col: str, metric_cols: Sequence[str],
                   best_value: Any = None, name: str = "sweep") -> str:
        """One panel per metric across the swept parameter values."""
        metric_cols = [m for m in metric_cols if m in frame.columns]
        n = max(len(metric_cols), 1)
        fig, axes = plt.subplots(n, 1, figsize=(self.style.figure_width, 2.6 * n), squeeze=False)

        if not metric_cols:
            self._empty_axis(axes[0, 0], "No metrics to plot")
        data = frame.sort_values(value_col)
        for ax, metric in zip(axes[:, 0], metric_cols):
            ax.plot(data[value_col], data[metric], marker="o", color=self.style.palette["primary"])
            if best_value is not None:
                ax.axvline(best_value, color=self.style.palette["danger"], linestyle="--",
                           label=f"best = {best_value}")
                ax.legend()
            ax.set_ylabel(metric)
            ax.grid(alpha=0.3)
        axes[-1, 0].set_xlabel(value_col)
        fig.suptitle(f"Sweep over {value_col}", fontweight="bold")
        fig.tight_layout()

        return self._save(fig, name)

    def plot_confusion_matrix(self, cm_frame: pd.DataFrame, name: str = "confusion_matrix") -> str:
        fig, ax = plt.subplots(figsize=(self.style.figure_width * 0.8, self.style.figure_height))
        sns.heatmap(cm_frame, annot=True, fmt="d", cmap="Blues", cbar=False, ax=ax)
        ax.set_xlabel("Predicted")
        ax.set_ylabel("Actual")
        ax.set_title("Confusion matrix")
        return self._save(fig, name)

    def plot_feature_importance(self, importances: pd.Series, top_n: int = 15,
                                name: str = "feature_importance") -> str:
        top = importances.sort_values(ascending=False).head(top_n)[::-1]
        fig, ax = plt.subplots(figsize=(self.style.figure_width, self.style.figure_height))
        if top.empty:
            self._empty_axis(ax, "No importances available")
        else:
            ax.barh(top.index.astype(str), top.values, color=self.style.palette["success"],
                    edgecolor="black")
            ax.set_xlabel("Importance")
        ax.set_title(f"Top {len(top)} features")
        return self._save(fig, name)

    # ----------------------------
    # PDF
    # ----------------------------

    def create_pdf_report(self, title: str, sections: List[Dict[str, Any]],
                          file_prefix: Optional[str] = None,
                          enable_validation: bool = True) -> str:
        """
        Build a PDF from a list of sections.

        Args:
            title: Report title (first page)
            sections: dicts with optional keys 'heading', 'text', 'table'
                (DataFrame), 'figures' (PNG paths) and 'page_break' (bool)
            file_prefix: Filename prefix; defaults to a slug of the title
            enable_validation: Check that the file exists and is not empty

        Returns:
            Path to generated PDF report
        """
        date_str = dt.date.today().isoformat()
        prefix = file_prefix or _slug(title)
        report_path = os.path.join(self.output_dir, f"{prefix}_{date_str}.pdf")

        doc = SimpleDocTemplate(
            report_path,
            pagesize=self.style.page_size,
            leftMargin=self.style.margin_mm * mm,
            rightMargin=self.style.margin_mm * mm,
            topMargin=self.style.margin_mm * mm,
            bottomMargin=self.style.margin_mm * mm,
            title=title,
            author="analysis_lab",
        )

        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            'LabTitle',
            parent=styles['Title'],
            fontSize=self.style.title_size,
            textColor=colors.HexColor(self.style.palette['primary']),
            alignment=TA_CENTER,
            spaceAfter=16,
            fontName=self.style.font_name + '-Bold'
        )
        heading_style = ParagraphStyle(
            'LabHeading',
            parent=styles['Heading2'],
            fontSize=self.style.heading_size,
            textColor=colors.HexColor(self.style.palette['text']),
            spaceAfter=8,
            fontName=self.style.font_name + '-Bold'
        )
        body_style = ParagraphStyle(
            'LabBody',
            parent=styles['Normal'],
            fontSize=self.style.body_size,
            textColor=colors.HexColor(self.style.palette['text']),
            spaceAfter=6,
            fontName=self.style.font_name,
            alignment=TA_JUSTIFY
        )

        story: List[Any] = [
            Paragraph(_escape(title), title_style),
            Paragraph(f"Generated {date_str}", body_style),
            Spacer(1, 12),
        ]

        usable_width = self.style.page_size[0] - 2 * self.style.margin_mm * mm
        for section in sections:
            if section.get("heading"):
                story.append(Paragraph(_escape(str(section["heading"])), heading_style))
            if section.get("text"):
                story.append(Paragraph(_escape(str(section["text"])), body_style))
            table = section.get("table")
            if isinstance(table, pd.DataFrame) and not table.empty:
                story.append(self._pdf_table(table, usable_width))
                story.append(Spacer(1, 8))
            for fig_path in section.get("figures", []) or []:
                if fig_path and os.path.exists(fig_path):
                    story.append(Image(fig_path, width=usable_width,
                                       height=usable_width * self.style.figure_height / self.style.figure_width,
                                       kind="proportional"))
                    story.append(Spacer(1, 8))
            if section.get("page_break"):
                story.append(PageBreak())

        doc.build(story)

        if enable_validation:
            self._validate_report(report_path)

        logger.info(f"📄 PDF written: {report_path}")
        return report_path

    # ----------------------------
    # Helpers
    # ----------------------------

    def _pdf_table(self, df: pd.DataFrame, width: float) -> Table:
        data = frame_to_table_data(df)
        n_cols = max(len(data[0]), 1)
        table = Table(data, colWidths=[width / n_cols] * n_cols, repeatRows=1)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor(self.style.palette['primary'])),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('FONTNAME', (0, 0), (-1, 0), self.style.font_name + '-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), self.style.small_size),
            ('GRID', (0, 0), (-1, -1), 0.25, colors.HexColor(self.style.palette['grid'])),
            ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#F8F9FA')]),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ]))
        return table

    def _save(self, fig, name: str) -> str:
        fig_path = os.path.join(self.figures_dir, f"{_slug(name)}.png")
        fig.savefig(fig_path, dpi=self.style.figure_dpi, bbox_inches='tight', facecolor='white')
        plt.close(fig)
        return fig_path

    @staticmethod
    def _empty_axis(ax, message: str) -> None:
        ax.text(0.5, 0.5, message, ha='center', va='center', transform=ax.transAxes)
        ax.axis('off')

    def _validate_report(self, report_path: str):
        """Validate generated report is a non-empty file."""
        if not os.path.exists(report_path):
            raise ValueError(f"Report file not found: {report_path}")

        file_size = os.path.getsize(report_path)
        if file_size == 0:
            raise ValueError(f"Generated PDF is empty: {report_path}")

        logger.info(f"Report validation passed: {report_path} ({file_size} bytes)")


def frame_to_table_data(df: pd.DataFrame, max_rows: int = 30, float_fmt: str = "{:.4f}") -> List[List[str]]:
    """
    Header row + formatted body rows for a reportlab Table.

    Frames longer than ``max_rows`` are truncated with a trailing ellipsis row.
    """
    flat = df.reset_index() if _has_named_index(df) else df
    header = [str(c) for c in flat.columns]
    rows: List[List[str]] = [header]
    for _, rec in flat.head(max_rows).iterrows():
        rows.append([_fmt_cell(v, float_fmt) for v in rec.tolist()])
    if len(flat) > max_rows:
        rows.append(["…"] * len(header))
    return rows


def _fmt_cell(v: Any, float_fmt: str) -> str:
    if v is None:
        return ""
    if isinstance(v, (float, np.floating)):
        if np.isnan(v):
            return ""
        return float_fmt.format(v)
    if isinstance(v, (bool, np.bool_)):
        return "yes" if v else "no"
    if v is pd.NA:
        return ""
    return str(v)


def _has_named_index(df: pd.DataFrame) -> bool:
    return any(n is not None for n in df.index.names)


def _slug(text: str) -> str:
    keep = [ch if ch.isalnum() else "_" for ch in text.strip()]
    slug = "".join(keep).strip("_")
    while "__" in slug:
        slug = slug.replace("__", "_")
    return slug or "report"


def _escape(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
