"""
End-to-end run: load, select, train, predict, calibrate, normalize,
aggregate to stands, evaluate and plot.

Each stage consumes the previous stage's output in full. The trained model
and every intermediate table are returned in a PipelineResult; nothing is
kept in module state.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Union

import matplotlib.pyplot as plt
import pandas as pd

from .aggregation import aggregate_by_stand, round_for_display
from .calibration import LinearCalibration, apply_calibration, fit_calibration
from .config import (
    PLOT_ID_COLUMN, STAND_ID_COLUMN, TARGET_COLUMNS, RANDOM_STATE, DEFAULT_ALGORITHM,
    APPLY_CALIBRATION, DISPLAY_PRECISION, ZERO_ROW_POLICY, ZERO_MEAN_POLICY,
    CSV_SEPARATOR, PLOTS_DIR, MIN_CALIBRATION_SLOPE,
)
from .data_loader import (
    load_datasets, print_data_report, split_features_targets, validate_feature_values,
)
from .evaluation import ProportionEvaluator, plot_observed_vs_predicted, prediction_column
from .features import FeatureSchema, select_features
from .models import ProportionModel, predict_proportions, train_model
from .postprocessing import postprocess_predictions


@dataclass
class PipelineResult:
    """Everything one run produced."""

    model: ProportionModel
    schema: FeatureSchema
    results: pd.DataFrame
    stands: pd.DataFrame
    plot_metrics: pd.DataFrame
    stand_metrics: pd.DataFrame
    evaluator: ProportionEvaluator
    calibrations: Dict[str, LinearCalibration] = field(default_factory=dict)
    figure_path: Optional[Path] = None


def build_results_table(df: pd.DataFrame, predictions: pd.DataFrame) -> pd.DataFrame:
    """Plot id, stand id, observed targets and <target>_pred columns."""
    results = df[[PLOT_ID_COLUMN, STAND_ID_COLUMN] + TARGET_COLUMNS].copy()
    for target in TARGET_COLUMNS:
        results[prediction_column(target)] = predictions[target].values
    return results


def predict_validation(
    model: ProportionModel,
    X_train: pd.DataFrame,
    Y_train: pd.DataFrame,
    X_val: pd.DataFrame,
    calibrate: bool = APPLY_CALIBRATION,
    zero_row_policy: str = ZERO_ROW_POLICY,
    min_slope: float = MIN_CALIBRATION_SLOPE,
):
    """
    Predict the validation plots, optionally calibrated, then normalized.

    Returns:
        Tuple of (normalized predictions, calibrations). The calibration
        dictionary is empty when calibrate is False.
    """
    print("\n🔮 Predicting validation plots...")
    predictions = predict_proportions(model, X_val)

    calibrations = {}
    if calibrate:
        predicted_oob = predict_proportions(model, X_train, out_of_sample=True, Y=Y_train)
        calibrations = fit_calibration(Y_train, predicted_oob, min_slope=min_slope)
        predictions = apply_calibration(predictions, calibrations)
    else:
        print("  ℹ️  Skipping calibration")

    predictions = postprocess_predictions(predictions, zero_row_policy=zero_row_policy)
    print(f"✅ Done! {len(predictions)} plots predicted")
    return predictions, calibrations


def save_results(df: pd.DataFrame, path: Union[str, Path], sep: str = CSV_SEPARATOR) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, sep=sep, index=False)
    print(f"✅ Saved results to {path}")
    return path


def run_pipeline(
    train_path: Union[str, Path],
    val_path: Union[str, Path],
    schema: Optional[FeatureSchema] = None,
    discover_features: bool = False,
    algorithm: str = DEFAULT_ALGORITHM,
    calibrate: bool = APPLY_CALIBRATION,
    random_state: int = RANDOM_STATE,
    decimals: int = DISPLAY_PRECISION,
    zero_row_policy: str = ZERO_ROW_POLICY,
    zero_mean_policy: str = ZERO_MEAN_POLICY,
    output_path: Optional[Union[str, Path]] = None,
    plot_path: Optional[Union[str, Path]] = None,
    make_plots: bool = True,
    sep: str = CSV_SEPARATOR,
    verbose: bool = True,
) -> PipelineResult:
    """
    Run the whole analysis once.

    Args:
        train_path: Sample plot table.
        val_path: Validation plot table.
        schema: Predictor columns. Defaults to the declared schema.
        discover_features: Build the schema from the sample plot header by
            naming convention instead.
        algorithm: Regression algorithm name.
        calibrate: Apply linear calibration before normalizing.
        random_state: Seed for the model.
        decimals: Rounding of the printed tables only.
        zero_row_policy: Normalization of all-zero prediction rows.
        zero_mean_policy: Relative RMSE with a zero observed mean.
        output_path: Where to save the plot-level results table, if anywhere.
        plot_path: Where to save the observed-vs-predicted figure.
        make_plots: Draw the figure at all.
        sep: Field delimiter of the input and output tables.
        verbose: Print data reports and the stand table.

    Returns:
        PipelineResult with the model and all output tables.
    """
    if not discover_features:
        schema = schema or FeatureSchema.default()
    df_train, df_val = load_datasets(
        train_path, val_path,
        feature_columns=None if discover_features else schema.columns,
        sep=sep,
    )
    if discover_features:
        schema = FeatureSchema.from_conventions(df_train.columns)
        schema.validate(df_val, "validation plots")
        validate_feature_values(df_train, schema.columns, "sample plots")
        validate_feature_values(df_val, schema.columns, "validation plots")

    if verbose:
        print_data_report(df_train, "sample plots")
        print_data_report(df_val, "validation plots")

    train, val = select_features(df_train, df_val, schema)
    X_train, Y_train = split_features_targets(train, schema.columns)
    X_val, _ = split_features_targets(val, schema.columns)

    model = train_model(X_train, Y_train, algorithm=algorithm, random_state=random_state)
    predictions, calibrations = predict_validation(
        model, X_train, Y_train, X_val,
        calibrate=calibrate, zero_row_policy=zero_row_policy,
    )

    results = build_results_table(val, predictions)
    value_columns = TARGET_COLUMNS + [prediction_column(t) for t in TARGET_COLUMNS]
    stands = aggregate_by_stand(results, value_columns=value_columns)

    evaluator = ProportionEvaluator(zero_mean_policy=zero_mean_policy)
    plot_metrics = evaluator.evaluate('plot', results)
    stand_metrics = evaluator.evaluate('stand', stands)
    evaluator.print_summary()

    if verbose:
        print("\n📋 Stand means:")
        print(round_for_display(stands, decimals).to_string(index=False))

    if output_path is not None:
        save_results(results, output_path, sep=sep)

    figure_path = None
    if make_plots:
        figure_path = Path(plot_path) if plot_path else PLOTS_DIR / f'observed_vs_predicted_{algorithm}.png'
        fig = plot_observed_vs_predicted(
            stands,
            title=f'Stand-level proportions ({algorithm}{", calibrated" if calibrate else ""})',
            save_path=figure_path,
        )
        plt.close(fig)

    return PipelineResult(
        model=model,
        schema=schema,
        results=results,
        stands=stands,
        plot_metrics=plot_metrics,
        stand_metrics=stand_metrics,
        evaluator=evaluator,
        calibrations=calibrations,
        figure_path=figure_path,
    )
