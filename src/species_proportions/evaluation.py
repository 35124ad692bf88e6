"""
Accuracy metrics and observed-vs-predicted plots for proportion predictions.
"""
from pathlib import Path
from typing import List, Optional, Union

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from .config import (
    TARGET_COLUMNS, CLASS_NAMES, PREDICTION_SUFFIX, PLOTS_DIR, ZERO_MEAN_POLICY,
)
from .exceptions import UndefinedMetricError

ZERO_MEAN_POLICIES = ("raise", "nan")


def prediction_column(target: str) -> str:
    return f"{target}{PREDICTION_SUFFIX}"


def compute_errors(
    observed: pd.DataFrame,
    predicted: pd.DataFrame,
    targets: Optional[List[str]] = None,
    zero_mean_policy: str = ZERO_MEAN_POLICY,
) -> pd.DataFrame:
    """
    Mean difference, RMSE and relative RMSE per class.

    All means skip missing values. Relative RMSE divides by the mean
    observed value; when that mean is 0 the metric is undefined.

    Args:
        observed: Observed proportions, one column per class.
        predicted: Predicted proportions with the same columns and index.
        targets: Classes to evaluate. Defaults to TARGET_COLUMNS.
        zero_mean_policy: "raise" to fail with UndefinedMetricError,
            "nan" to report NaN.

    Returns:
        One-row DataFrame: mean_diff_<t>, rmse_<t>, rel_rmse_<t> per class.
    """
    if zero_mean_policy not in ZERO_MEAN_POLICIES:
        raise ValueError(
            f"Unknown zero_mean_policy '{zero_mean_policy}'. Available: {list(ZERO_MEAN_POLICIES)}"
        )
    targets = targets or TARGET_COLUMNS

    metrics = {}
    for target in targets:
        obs = observed[target].astype(float)
        diff = predicted[target].astype(float) - obs

        rmse = float(np.sqrt((diff ** 2).mean()))
        obs_mean = float(obs.mean())
        if obs_mean == 0 or np.isnan(obs_mean):
            if zero_mean_policy == "raise":
                raise UndefinedMetricError(
                    f"relative RMSE undefined, mean observed value is {obs_mean}",
                    column=target,
                )
            rel_rmse = float('nan')
        else:
            rel_rmse = rmse / obs_mean

        metrics[f'mean_diff_{target}'] = float(diff.mean())
        metrics[f'rmse_{target}'] = rmse
        metrics[f'rel_rmse_{target}'] = rel_rmse

    return pd.DataFrame([metrics])


class ProportionEvaluator:
    """
    Collects error metrics for named result sets (e.g. plot and stand level).
    """

    def __init__(self, targets: Optional[List[str]] = None,
                 zero_mean_policy: str = ZERO_MEAN_POLICY):
        self.targets = targets or TARGET_COLUMNS
        self.zero_mean_policy = zero_mean_policy
        self.results = {}

    def evaluate(self, name: str, results: pd.DataFrame) -> pd.DataFrame:
        """
        Evaluate a results table holding <target> and <target>_pred columns.

        Args:
            name: Label for this result set.
            results: Observed and predicted columns side by side.

        Returns:
            One-row metrics table.
        """
        observed = results[self.targets]
        predicted = results[[prediction_column(t) for t in self.targets]].set_axis(self.targets, axis=1)

        metrics = compute_errors(observed, predicted, self.targets, self.zero_mean_policy)
        self.results[name] = {
            'metrics': metrics,
            'n': len(results),
        }
        return metrics

    def get_comparison_table(self) -> pd.DataFrame:
        if not self.results:
            raise ValueError("No results evaluated yet.")

        rows = []
        for name, result in self.results.items():
            row = {'level': name, 'n': result['n']}
            row.update(result['metrics'].iloc[0].to_dict())
            rows.append(row)
        return pd.DataFrame(rows)

    def get_summary_table(self, name: str) -> pd.DataFrame:
        """Metrics of one result set reshaped to one row per class."""
        if name not in self.results:
            raise ValueError(f"Results '{name}' not evaluated yet.")

        metrics = self.results[name]['metrics'].iloc[0]
        return pd.DataFrame([
            {
                'class': CLASS_NAMES.get(t, t),
                'target': t,
                'mean_diff': metrics[f'mean_diff_{t}'],
                'rmse': metrics[f'rmse_{t}'],
                'rel_rmse': metrics[f'rel_rmse_{t}'],
            }
            for t in self.targets
        ])

    def print_summary(self, decimals: int = 3) -> None:
        """Print the error metrics of every evaluated result set."""
        print("\n" + "="*60)
        print("📊 ACCURACY SUMMARY")
        print("="*60)
        for name, result in self.results.items():
            print(f"\n  {name} (n={result['n']})")
            print(self.get_summary_table(name).round(decimals).to_string(index=False))


def plot_observed_vs_predicted(
    stands: pd.DataFrame,
    targets: Optional[List[str]] = None,
    title: str = 'Observed vs predicted proportions',
    figsize: tuple = (15, 5),
    save_path: Optional[Union[str, Path]] = None,
) -> plt.Figure:
    """
    Scatter observed against predicted proportions, one panel per class.

    Each panel has a dashed 1:1 line and a fitted linear trend.

    Args:
        stands: Table with <target> and <target>_pred columns.
        targets: Classes to plot. Defaults to TARGET_COLUMNS.
        title: Figure title.
        figsize: Figure size.
        save_path: Where to write the PNG. Nothing is written if None.

    Returns:
        Matplotlib figure.
    """
    targets = targets or TARGET_COLUMNS
    fig, axes = plt.subplots(1, len(targets), figsize=figsize, sharex=True, sharey=True)
    axes = np.atleast_1d(axes)

    colors = sns.color_palette('Set1', len(targets))

    for ax, target, color in zip(axes, targets, colors):
        data = stands[[target, prediction_column(target)]].dropna()

        ax.plot([0, 1], [0, 1], 'k--', lw=1, label='1:1')
        if len(data) >= 2:
            sns.regplot(
                x=target, y=prediction_column(target), data=data, ax=ax,
                ci=None, color=color,
                scatter_kws={'alpha': 0.7, 's': 30},
                line_kws={'lw': 2, 'label': 'trend'},
            )
        else:
            ax.scatter(data[target], data[prediction_column(target)], color=color)

        ax.set_xlim(0, 1)
        ax.set_ylim(0, 1)
        ax.set_aspect('equal')
        ax.set_xlabel('Observed')
        ax.set_ylabel('Predicted')
        ax.set_title(f'{CLASS_NAMES.get(target, target)} ({target})', fontweight='bold')
        ax.legend(loc='upper left', fontsize=8)
        ax.grid(True, alpha=0.3)

    fig.suptitle(title, fontsize=14, fontweight='bold')
    fig.tight_layout()

    if save_path is not None:
        save_path = Path(save_path)
        save_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"✅ Saved observed vs predicted plot to {save_path}")

    return fig


def plot_feature_importance(
    importance_df: pd.DataFrame,
    model_name: str,
    top_n: int = 20,
    figsize: tuple = (10, 8),
    save: bool = True,
) -> plt.Figure:
    """
    Plot feature importance.

    Args:
        importance_df: DataFrame with 'feature' and 'importance' columns.
        model_name: Name of the model.
        top_n: Number of top features to show.
        figsize: Figure size.
        save: If True, save the plot to PLOTS_DIR.

    Returns:
        Matplotlib figure.
    """
    top_features = importance_df.head(top_n)

    fig, ax = plt.subplots(figsize=figsize)
    colors = plt.cm.viridis(np.linspace(0.2, 0.8, len(top_features)))

    ax.barh(range(len(top_features)), top_features['importance'].values, color=colors)
    ax.set_yticks(range(len(top_features)))
    ax.set_yticklabels(top_features['feature'].values)
    ax.invert_yaxis()

    ax.set_xlabel('Importance', fontsize=12)
    ax.set_title(f'Top {top_n} Feature Importances - {model_name}',
                 fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save:
        PLOTS_DIR.mkdir(parents=True, exist_ok=True)
        filename = PLOTS_DIR / f'feature_importance_{model_name}.png'
        plt.savefig(filename, dpi=150, bbox_inches='tight')
        print(f"✅ Saved feature importance to {filename}")

    return fig
