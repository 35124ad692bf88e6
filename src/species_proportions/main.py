#!/usr/bin/env python3
"""
Tree species proportion pipeline.

Usage:
    species-proportions                          # Default data paths, random forest
    species-proportions --calibrate              # Linear calibration before normalizing
    species-proportions --algorithm dirichlet    # Compositional regression
    species-proportions --train-path A.csv --val-path B.csv --output results.csv
"""
import argparse
import sys

from .config import (
    TRAIN_DATA_PATH, VALIDATION_DATA_PATH, RANDOM_STATE, ALGORITHMS, DEFAULT_ALGORITHM,
    DISPLAY_PRECISION, ZERO_ROW_POLICY, APPLY_CALIBRATION,
)
from .exceptions import ProportionPipelineError
from .models import get_feature_importance, save_model
from .pipeline import run_pipeline
from .postprocessing import ZERO_ROW_POLICIES


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Tree species proportion prediction')
    parser.add_argument('--train-path', type=str, default=str(TRAIN_DATA_PATH),
                        help='Path to the sample plot table')
    parser.add_argument('--val-path', type=str, default=str(VALIDATION_DATA_PATH),
                        help='Path to the validation plot table')
    parser.add_argument('--algorithm', '-a', choices=ALGORITHMS, default=DEFAULT_ALGORITHM,
                        help='Regression algorithm')
    parser.add_argument('--calibrate', action='store_true', default=APPLY_CALIBRATION,
                        help='Calibrate predictions against out-of-bag training predictions')
    parser.add_argument('--seed', type=int, default=RANDOM_STATE,
                        help='Random seed')
    parser.add_argument('--precision', type=int, default=DISPLAY_PRECISION,
                        help='Decimal digits of printed tables')
    parser.add_argument('--zero-row-policy', choices=ZERO_ROW_POLICIES, default=ZERO_ROW_POLICY,
                        help='Normalization of rows whose predictions sum to 0')
    parser.add_argument('--discover-features', action='store_true',
                        help='Select predictors by naming convention instead of the declared schema')
    parser.add_argument('--output', '-o', type=str, default=None,
                        help='Save the plot-level results table here')
    parser.add_argument('--save-model', type=str, default=None,
                        help='Save the trained model bundle here')
    parser.add_argument('--plot-path', type=str, default=None,
                        help='Save the observed vs predicted figure here')
    parser.add_argument('--no-plots', action='store_true',
                        help='Skip generating plots')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    print("\n🌲 TREE SPECIES PROPORTIONS")
    print("="*50)
    print(f"   Algorithm: {args.algorithm} | calibration: {'on' if args.calibrate else 'off'} | seed: {args.seed}")

    try:
        result = run_pipeline(
            args.train_path,
            args.val_path,
            discover_features=args.discover_features,
            algorithm=args.algorithm,
            calibrate=args.calibrate,
            random_state=args.seed,
            decimals=args.precision,
            zero_row_policy=args.zero_row_policy,
            output_path=args.output,
            plot_path=args.plot_path,
            make_plots=not args.no_plots,
        )
    except ProportionPipelineError as e:
        print(f"\n❌ {e}")
        return 1

    if not args.no_plots:
        from .evaluation import plot_feature_importance
        import matplotlib.pyplot as plt

        fig = plot_feature_importance(get_feature_importance(result.model), result.model.name)
        plt.close(fig)

    if args.save_model:
        save_model(result.model, args.save_model, extra={
            "schema_version": result.schema.version,
            "calibrations": result.calibrations,
            "zero_row_policy": args.zero_row_policy,
        })

    print("\n📋 Plot-level error metrics:")
    print(result.plot_metrics.round(args.precision).T.to_string(header=False))
    print("\n✅ Done!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
