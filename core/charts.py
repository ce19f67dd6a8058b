from __future__ import annotations

from typing import Any, Dict, Union

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()

TARGET_COLOR = "#ef4444"


def percent_axis(title: str) -> alt.Axis:
    return alt.Axis(title=title, gridDash=[4, 4], domain=False, ticks=False, labelExpr="datum.value + '%'")


def target_rule(value: float = 100.0) -> alt.Chart:
    """Dashed reference line at ``value`` percent."""
    return alt.Chart(pd.DataFrame({"target": [value]})).mark_rule(strokeDash=[6, 4], color=TARGET_COLOR).encode(y="target:Q")


def to_vega_spec(chart: Union[alt.Chart, alt.LayerChart]) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()
