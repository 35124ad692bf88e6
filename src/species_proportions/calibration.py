"""
Linear calibration of predicted proportions.

For each class a line predicted = a + b * observed is fitted on the
out-of-sample predictions of the training plots. New predictions are
de-biased by inverting that line and clipping to [0, 1]. Classes are
calibrated independently, so rows no longer sum to one afterwards and
must be normalized again.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression

from .config import MIN_CALIBRATION_SLOPE
from .exceptions import DegenerateCalibrationError


@dataclass(frozen=True)
class LinearCalibration:
    """Affine fit of out-of-sample predictions on observations for one class."""

    target: str
    intercept: float
    slope: float
    r2: float = float('nan')
    n_plots: int = 0

    def fitted(self, observed):
        """Prediction the line expects for a given observed value."""
        return self.intercept + self.slope * np.asarray(observed, dtype=float)

    def invert(self, predicted):
        """Corrected value (predicted - a) / b, not clipped."""
        return (np.asarray(predicted, dtype=float) - self.intercept) / self.slope


def fit_linear_calibration(
    target: str,
    observed: pd.Series,
    predicted_oob: pd.Series,
    min_slope: float = MIN_CALIBRATION_SLOPE,
) -> LinearCalibration:
    """
    Fit predicted_oob = a + b * observed for one class.

    Raises:
        DegenerateCalibrationError: If |b| < min_slope, fewer than two
            usable plots remain, or the result is not finite.
    """
    pairs = pd.DataFrame({'observed': observed, 'predicted': predicted_oob}).dropna()
    if len(pairs) < 2:
        raise DegenerateCalibrationError(
            f"need at least 2 plots with observed and predicted values, got {len(pairs)}",
            table="sample plots", column=target,
        )

    reg = LinearRegression().fit(pairs[['observed']], pairs['predicted'])
    intercept = float(reg.intercept_)
    slope = float(reg.coef_[0])

    if not np.isfinite(slope) or not np.isfinite(intercept) or abs(slope) < min_slope:
        raise DegenerateCalibrationError(
            f"slope {slope:.3g} is too close to zero to invert (minimum {min_slope:g})",
            table="sample plots", column=target,
        )

    return LinearCalibration(
        target=target,
        intercept=intercept,
        slope=slope,
        r2=float(reg.score(pairs[['observed']], pairs['predicted'])),
        n_plots=len(pairs),
    )


def fit_calibration(
    observed: pd.DataFrame,
    predicted_oob: pd.DataFrame,
    targets: Optional[List[str]] = None,
    min_slope: float = MIN_CALIBRATION_SLOPE,
) -> Dict[str, LinearCalibration]:
    """
    Fit one calibration line per class.

    Args:
        observed: Observed proportions of the training plots.
        predicted_oob: Out-of-sample predictions for the same plots.
        targets: Classes to calibrate. Defaults to the columns of observed.
        min_slope: Smallest slope magnitude that can be inverted.

    Returns:
        Dictionary mapping class column to its calibration.
    """
    targets = targets or list(observed.columns)
    print("\n🔧 Fitting calibration lines (predicted = a + b * observed)...")

    calibrations = {}
    for target in targets:
        cal = fit_linear_calibration(target, observed[target], predicted_oob[target], min_slope)
        calibrations[target] = cal
        print(f"  ✓ {target}: a={cal.intercept:.4f}, b={cal.slope:.4f}, R²={cal.r2:.3f}")

    return calibrations


def apply_calibration(
    predictions: pd.DataFrame,
    calibrations: Dict[str, LinearCalibration],
) -> pd.DataFrame:
    """Invert each class's line on new predictions and clip to [0, 1]."""
    corrected = predictions.copy()
    for target, cal in calibrations.items():
        corrected[target] = np.clip(cal.invert(predictions[target]), 0.0, 1.0)
    return corrected


def calibration_table(calibrations: Dict[str, LinearCalibration]) -> pd.DataFrame:
    return pd.DataFrame([
        {
            'target': cal.target,
            'intercept': cal.intercept,
            'slope': cal.slope,
            'r2': cal.r2,
            'n_plots': cal.n_plots,
        }
        for cal in calibrations.values()
    ])
