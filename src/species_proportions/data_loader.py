"""
Data loading and initial inspection module.

Reads the sample plot (training) and validation plot tables and checks the
columns every plot record must carry before anything downstream runs.
"""
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .config import (
    CSV_SEPARATOR, PLOT_ID_COLUMN, STAND_ID_COLUMN, TARGET_COLUMNS, CLASS_NAMES,
    TRAIN_DATA_PATH, VALIDATION_DATA_PATH, NORMALIZATION_TOLERANCE,
)
from .exceptions import DataLoadError
from .features import FeatureSchema


def load_data(
    filepath: Union[str, Path],
    sep: str = CSV_SEPARATOR,
    name: Optional[str] = None,
) -> pd.DataFrame:
    """
    Load one plot table from a delimited file.

    Args:
        filepath: Path to the delimited file (header row required).
        sep: Field delimiter.
        name: Table name used in messages. Defaults to the file name.

    Returns:
        DataFrame with one row per plot, in file order.

    Raises:
        DataLoadError: If the file is missing or malformed.
    """
    filepath = Path(filepath)
    name = name or filepath.name

    if not filepath.is_file():
        raise DataLoadError(f"file not found: {filepath}", table=name)

    try:
        df = pd.read_csv(filepath, sep=sep)
    except pd.errors.EmptyDataError:
        raise DataLoadError(f"file is empty: {filepath}", table=name)
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise DataLoadError(f"could not parse {filepath}: {e}", table=name)

    validate_plot_table(df, name)
    print(f"✅ Loaded {name}: {df.shape[0]} plots, {df.shape[1]} columns")
    return df


def validate_plot_table(df: pd.DataFrame, name: str) -> None:
    """Check identifier and target columns of a freshly loaded table."""
    if df.empty:
        raise DataLoadError("table has no rows", table=name)

    required = [PLOT_ID_COLUMN, STAND_ID_COLUMN] + TARGET_COLUMNS
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise DataLoadError(f"missing required columns {missing}", table=name)

    duplicated = df[PLOT_ID_COLUMN][df[PLOT_ID_COLUMN].duplicated()]
    if len(duplicated) > 0:
        raise DataLoadError(
            f"duplicate plot identifiers: {duplicated.unique().tolist()[:5]}",
            table=name, column=PLOT_ID_COLUMN,
        )

    for col in [PLOT_ID_COLUMN, STAND_ID_COLUMN]:
        null_rows = np.flatnonzero(df[col].isna().to_numpy())
        if len(null_rows) > 0:
            raise DataLoadError(
                f"{len(null_rows)} plots without identifier, first in row {int(null_rows[0])}",
                table=name, column=col,
            )

    for col in TARGET_COLUMNS:
        values = to_numeric_column(df, col, name)
        out_of_range = (values < 0) | (values > 1)
        if out_of_range.any():
            raise DataLoadError(
                f"{int(out_of_range.sum())} proportions outside [0, 1]",
                table=name, column=col,
            )
        df[col] = values


def to_numeric_column(df: pd.DataFrame, col: str, name: str) -> pd.Series:
    """Parse one column as numbers; empty cells become NaN, anything else fails."""
    values = pd.to_numeric(df[col], errors='coerce')
    bad_rows = values.isna() & df[col].notna()
    if bad_rows.any():
        first = int(np.flatnonzero(bad_rows.to_numpy())[0])
        raise DataLoadError(
            f"non-numeric value {df[col].iloc[first]!r} in row {first}",
            table=name, column=col,
        )
    return values


def validate_feature_values(df: pd.DataFrame, feature_columns: List[str], name: str) -> None:
    """Parse the predictor columns as numbers, in place."""
    for col in feature_columns:
        df[col] = to_numeric_column(df, col, name)


def check_complete_targets(df: pd.DataFrame, name: str) -> None:
    """
    Training plots need all three observed proportions.

    Validation plots may lack some; their metrics skip missing values.
    """
    for col in TARGET_COLUMNS:
        null_rows = np.flatnonzero(df[col].isna().to_numpy())
        if len(null_rows) > 0:
            raise DataLoadError(
                f"{len(null_rows)} plots without an observed value, first in row {int(null_rows[0])}",
                table=name, column=col,
            )


def load_datasets(
    train_path: Union[str, Path] = TRAIN_DATA_PATH,
    val_path: Union[str, Path] = VALIDATION_DATA_PATH,
    feature_columns: Optional[List[str]] = None,
    sep: str = CSV_SEPARATOR,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Load the sample plots and the validation plots.

    When feature_columns is given, both tables are checked against it here,
    so a missing predictor fails at load time rather than at prediction.
    """
    df_train = load_data(train_path, sep=sep, name="sample plots")
    df_val = load_data(val_path, sep=sep, name="validation plots")
    check_complete_targets(df_train, "sample plots")

    if feature_columns is not None:
        schema = FeatureSchema(columns=list(feature_columns))
        schema.validate(df_train, "sample plots")
        schema.validate(df_val, "validation plots")
        validate_feature_values(df_train, schema.columns, "sample plots")
        validate_feature_values(df_val, schema.columns, "validation plots")

    return df_train, df_val


def get_data_info(df: pd.DataFrame) -> Dict[str, Any]:
    """
    Get summary information about a plot table.

    Args:
        df: Plot table.

    Returns:
        Dictionary with dataset information.
    """
    targets = df[TARGET_COLUMNS]
    row_sums = targets.sum(axis=1, min_count=1)

    info = {
        'n_plots': len(df),
        'n_stands': df[STAND_ID_COLUMN].nunique() if STAND_ID_COLUMN in df.columns else 0,
        'n_total_columns': len(df.columns),
        'missing_values': int(df.isnull().sum().sum()),
        'target_means': targets.mean().to_dict(),
        'target_min': targets.min().to_dict(),
        'target_max': targets.max().to_dict(),
        # Domain convention only; the pipeline does not enforce it
        'rows_not_summing_to_one': int(
            ((row_sums - 1).abs() > NORMALIZATION_TOLERANCE).sum()
        ),
    }
    return info


def print_data_report(df: pd.DataFrame, name: str = "plots") -> None:
    """
    Print a data quality report for one table.

    Args:
        df: Plot table.
        name: Table name shown in the header.
    """
    info = get_data_info(df)

    print("\n" + "="*60)
    print(f"📊 DATASET OVERVIEW: {name}")
    print("="*60)
    print(f"  Plots:             {info['n_plots']:,}")
    print(f"  Stands:            {info['n_stands']:,}")
    print(f"  Total columns:     {info['n_total_columns']}")
    print(f"  Missing values:    {info['missing_values']}")

    print("\n" + "-"*60)
    print("🎯 OBSERVED PROPORTIONS")
    print("-"*60)
    for col in TARGET_COLUMNS:
        label = CLASS_NAMES.get(col, col)
        print(
            f"  {label:10s} ({col}): mean={info['target_means'][col]:.3f} "
            f"min={info['target_min'][col]:.3f} max={info['target_max'][col]:.3f}"
        )

    if info['rows_not_summing_to_one']:
        print(f"\n  ⚠️  {info['rows_not_summing_to_one']} plots whose proportions do not sum to 1")

    print("\n" + "="*60)


def split_features_targets(
    df: pd.DataFrame,
    feature_columns: List[str],
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split a plot table into features (X) and the three targets (Y).

    The original row index is kept on both.
    """
    X = df[list(feature_columns)].copy()
    Y = df[TARGET_COLUMNS].copy()
    return X, Y
