from __future__ import annotations

from .categorizer import CategorizedRows

"""SUMMARY line rendering for the upload CLI."""

__all__ = [
    "render_summary_line",
]


def render_summary_line(categorized: CategorizedRows, created: int = 0) -> str:
    """Render the SUMMARY line for the current row state.

    Format:
    SUMMARY rows={total} valid={n} error={n} xls_duplicate={n} db_duplicate={n} rejected={n} created={n}

    ``rows`` counts every row including rejected ones, so the bucket counts
    plus ``rejected`` always add up to it.

    Examples:
        >>> from fleet_upload.models.upload_row import UploadRow
        >>> from fleet_upload.services.categorizer import categorize
        >>> render_summary_line(categorize([UploadRow(row_number=1, is_valid=True)]), created=1)
        'SUMMARY rows=1 valid=1 error=0 xls_duplicate=0 db_duplicate=0 rejected=0 created=1'
    """
    counts = categorized.counts()
    total = sum(counts.values())
    return (
        f"SUMMARY rows={total} "
        f"valid={counts['valid']} "
        f"error={counts['error']} "
        f"xls_duplicate={counts['xls_duplicate']} "
        f"db_duplicate={counts['db_duplicate']} "
        f"rejected={counts['rejected']} "
        f"created={created}"
    )
