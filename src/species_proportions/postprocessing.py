"""
Post-processing of predicted proportions: clipping and row normalization.
"""
import warnings

import numpy as np
import pandas as pd

from .config import NORMALIZATION_TOLERANCE, ZERO_ROW_POLICY

ZERO_ROW_POLICIES = ("keep", "uniform")


def clip_proportions(predictions: pd.DataFrame) -> pd.DataFrame:
    """Clip every value to [0, 1]."""
    return predictions.clip(lower=0.0, upper=1.0)


def normalize_proportions(
    predictions: pd.DataFrame,
    zero_row_policy: str = ZERO_ROW_POLICY,
) -> pd.DataFrame:
    """
    Rescale each row to sum to 1.

    Rows summing to 0 have no composition to rescale:
    "keep" passes them through unchanged, "uniform" sets every class to
    1 / n_classes.
    Rows with a missing prediction cannot be rescaled and come back as
    all-NaN; they are counted in a separate warning.

    Args:
        predictions: Non-negative proportions, one column per class.
        zero_row_policy: "keep" or "uniform".

    Returns:
        Normalized copy with the same index and columns.
    """
    if zero_row_policy not in ZERO_ROW_POLICIES:
        raise ValueError(
            f"Unknown zero_row_policy '{zero_row_policy}'. Available: {list(ZERO_ROW_POLICIES)}"
        )
    if (predictions < 0).any().any():
        raise ValueError("Proportions must be clipped to non-negative values before normalizing")

    missing_rows = predictions.isna().any(axis=1)
    totals = predictions.sum(axis=1).where(~missing_rows)
    # NaN totals never compare equal to 0
    zero_rows = totals == 0

    normalized = predictions.div(totals.where(~zero_rows, 1.0), axis=0)
    if zero_row_policy == "uniform" and zero_rows.any():
        normalized.loc[zero_rows, :] = 1.0 / predictions.shape[1]

    if zero_rows.any():
        warnings.warn(f"{int(zero_rows.sum())} rows sum to 0; applied '{zero_row_policy}' policy")
    if missing_rows.any():
        warnings.warn(f"{int(missing_rows.sum())} rows have missing predictions; left as NaN")

    return normalized


def check_proportions(predictions: pd.DataFrame, tol: float = NORMALIZATION_TOLERANCE) -> int:
    """Number of rows outside [0, 1] or not summing to 1 within tol."""
    values = predictions.to_numpy(dtype=float)
    out_of_range = ((values < -tol) | (values > 1 + tol)).any(axis=1)
    bad_sum = np.abs(values.sum(axis=1) - 1.0) > tol
    return int((out_of_range | bad_sum).sum())


def postprocess_predictions(
    predictions: pd.DataFrame,
    zero_row_policy: str = ZERO_ROW_POLICY,
) -> pd.DataFrame:
    """Clip then normalize."""
    n_off = check_proportions(predictions)
    if n_off:
        print(f"  ℹ️  {n_off} of {len(predictions)} predicted rows outside the simplex before normalizing")
    return normalize_proportions(clip_proportions(predictions), zero_row_policy=zero_row_policy)
