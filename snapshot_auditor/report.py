"""
Audit report rendering.

Turns the sorted report rows into a LaTeX document (one section per
namespace, one item per volume) and compiles it to PDF with pdflatex.
"""

import logging
import os
import subprocess
from datetime import date, datetime
from itertools import groupby
from typing import Iterable

from .models import PolicyStatus, ReportRow, SnapshotStatus

logger = logging.getLogger(__name__)

PDFLATEX = "pdflatex"

_LATEX_ESCAPES = {
    "\\": r"\textbackslash{}",
    "&": r"\&",
    "%": r"\%",
    "$": r"\$",
    "#": r"\#",
    "_": r"\_",
    "{": r"\{",
    "}": r"\}",
    "~": r"\textasciitilde{}",
    "^": r"\textasciicircum{}",
}

CLOSING_NOTES = (
    'Note, PVCs which are listed as "Added to Snapshotter Schedule" have been done today '
    "and are not expected to have snapshots yet.",
    "Also, if snapshot dates appear in red, check to see if snapshot creation has stopped "
    "for some reason.",
    "Volumes which are not backed by a Compute Engine persistent disk with region or zone "
    'labels (local, NFS, Rook) are listed as "Unsupported Volume".',
)


class ReportError(Exception):
    """The report could not be produced."""
    pass


def latex_escape(text: str) -> str:
    return "".join(_LATEX_ESCAPES.get(ch, ch) for ch in text)


def _color(color: str, text: str) -> str:
    return r"{\color{" + color + "}" + text + "}"


def _format_time(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC")


def status_text(row: ReportRow) -> str:
    """Schedule/status text shown after the volume name."""
    if row.policy_status == PolicyStatus.SCHEDULED:
        return "Schedule: " + latex_escape(row.schedule or "")
    if row.policy_status == PolicyStatus.ADDED:
        return _color("blue", "Added to Snapshotter Schedule")
    if row.policy_status == PolicyStatus.UNSUPPORTED:
        return _color("blue", "Unsupported Volume")
    if row.policy_status == PolicyStatus.MISSING_DRY_RUN:
        return _color("red", "Schedule: None (dry run, not added)")
    if row.policy_status == PolicyStatus.DISK_NOT_FOUND:
        return _color("red", "Error! Disk not found in any location!")
    if row.policy_status == PolicyStatus.ATTACH_FAILED:
        return _color("red", "Error! Snapshot schedule could not be added!")
    return _color("red", "Error! " + latex_escape(row.error or "reconciliation failed"))


def snapshot_lines(row: ReportRow) -> list[str]:
    """Snapshot summary lines following the item, if any."""
    if row.snapshot_status == SnapshotStatus.OK and row.stats is not None:
        stats = row.stats
        newest = _color("red" if stats.stale else "blue", _format_time(stats.newest))
        return [
            " ",
            f"Number of Snapshots: {stats.count} Oldest: {_format_time(stats.oldest)} Newest: {newest}",
        ]
    if row.snapshot_status == SnapshotStatus.MISSING:
        return [" ", _color("red", "Error! Snapshots are missing!")]
    if row.snapshot_status == SnapshotStatus.LOOKUP_FAILED:
        return [" ", _color("red", "Error! Snapshot lookup failed!")]
    return []


def render_latex(rows: Iterable[ReportRow], cluster_name: str, today: date | None = None) -> str:
    """
    Render report rows as a LaTeX document.

    Args:
        rows: Report rows; sorted here by (namespace, volume)
        cluster_name: Shown as the document author
        today: Report date (defaults to today)

    Returns:
        The LaTeX source
    """
    today = today or date.today()
    lines = [
        r"\documentclass[10pt]{article}",
        r"\usepackage[margin=0.5in]{geometry}",
        r"\usepackage{color}",
        r"\begin{document}",
        r"\title{GKE Snapshot Audit}",
        r"\author{Cluster: " + latex_escape(cluster_name) + "}",
        r"\date{" + today.isoformat() + "}",
        r"\maketitle",
    ]

    ordered = sorted(rows, key=lambda r: r.sort_key)
    for namespace, group in groupby(ordered, key=lambda r: r.namespace):
        lines.append(r"\section{" + latex_escape(namespace or "(no claim)") + "}")
        lines.append(r"\begin{itemize}")
        for row in group:
            lines.append(r"\item PVC: " + latex_escape(row.volume) + " " + status_text(row))
            lines.extend(snapshot_lines(row))
        lines.append(r"\end{itemize}")

    if not ordered:
        lines.append("No bound persistent volumes found.")

    lines.append(r"\vspace*{\fill}")
    lines.extend(latex_escape(note) for note in CLOSING_NOTES)
    lines.append(r"\end{document}")
    return "\n".join(lines) + "\n"


def build_pdf(latex: str, report_dir: str, basename: str, timeout: int = 120) -> str:
    """
    Write ``<basename>.tex`` into ``report_dir`` and compile it with pdflatex.

    Returns:
        Path of the generated PDF

    Raises:
        ReportError: If pdflatex is missing, fails or times out
    """
    os.makedirs(report_dir, exist_ok=True)
    for ext in (".tex", ".aux", ".log", ".pdf"):
        stale_path = os.path.join(report_dir, basename + ext)
        if os.path.exists(stale_path):
            os.remove(stale_path)

    tex_path = os.path.join(report_dir, basename + ".tex")
    with open(tex_path, "w", encoding="utf-8") as f:
        f.write(latex)

    logger.info(f"Compiling {tex_path}")
    try:
        subprocess.run(
            [PDFLATEX, "-interaction", "batchmode", tex_path],
            cwd=report_dir,
            check=True,
            capture_output=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise ReportError(f"{PDFLATEX} not installed") from e
    except subprocess.CalledProcessError as e:
        raise ReportError(f"PDF generation failed (exit {e.returncode})") from e
    except subprocess.TimeoutExpired as e:
        raise ReportError(f"PDF generation timed out after {timeout}s") from e

    pdf_path = os.path.join(report_dir, basename + ".pdf")
    if not os.path.exists(pdf_path):
        raise ReportError(f"PDF generation produced no {pdf_path}")
    return pdf_path
