# Overview: Human-facing document references derived from sequencer output.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..validation import ValidationError


def format_reference(prefix: str, year: int, sequence: int, width: int) -> str:
    """
    Year-scoped reference, e.g. format_reference("TF", 2025, 4, 4) -> "TF-2025-0004".

    Numbers wider than `width` are left as-is, never truncated.
    """
    if width < 1:
        raise ValidationError("width must be >= 1", details={"width": width})
    return f"{prefix}-{year}-{sequence:0{width}d}"


def reference_for(counter_name: str, sequence: int, issued_at: datetime) -> str:
    """Reference using the configured prefix/width for a document class or job."""
    prefixes = current_app.config["REFERENCE_PREFIXES"]
    if counter_name not in prefixes:
        raise ValidationError(f"No reference prefix configured for {counter_name}")
    return format_reference(
        prefixes[counter_name],
        issued_at.year,
        sequence,
        current_app.config.get("REFERENCE_WIDTH", 4),
    )
