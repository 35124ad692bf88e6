"""
Aggregation of plot-level results to stands.
"""
from typing import List, Optional

import pandas as pd

from .config import PLOT_ID_COLUMN, STAND_ID_COLUMN, DISPLAY_PRECISION


def aggregate_by_stand(
    df: pd.DataFrame,
    value_columns: Optional[List[str]] = None,
    stand_column: str = STAND_ID_COLUMN,
) -> pd.DataFrame:
    """
    Average plot values within each stand.

    Means ignore missing values. The result is not rounded; use
    round_for_display for printing or saving.

    Args:
        df: Plot-level table with a stand identifier column.
        value_columns: Columns to average. Defaults to all numeric columns
            except the plot and stand identifiers.
        stand_column: Stand identifier column.

    Returns:
        One row per stand, sorted by stand identifier, with an n_plots column.
    """
    if stand_column not in df.columns:
        raise ValueError(f"Column '{stand_column}' not found")
    if df[stand_column].isna().any():
        raise ValueError(f"{int(df[stand_column].isna().sum())} rows have no '{stand_column}'")

    if value_columns is None:
        value_columns = [
            col for col in df.select_dtypes(include='number').columns
            if col not in (stand_column, PLOT_ID_COLUMN)
        ]

    grouped = df.groupby(stand_column, sort=True)
    stands = grouped[value_columns].mean()
    stands.insert(0, 'n_plots', grouped.size())
    return stands.reset_index()


def round_for_display(df: pd.DataFrame, decimals: int = DISPLAY_PRECISION) -> pd.DataFrame:
    """Rounded copy for presentation; the input is left untouched."""
    return df.round(decimals)
