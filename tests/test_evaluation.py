"""
Tests for error metrics and plots.
"""
import math

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

from species_proportions.evaluation import (
    ProportionEvaluator, compute_errors, plot_feature_importance, plot_observed_vs_predicted,
)
from species_proportions.exceptions import UndefinedMetricError

TARGETS = ['rV_s', 'rV_p', 'rV_d']


def make_results(observed, predicted):
    results = pd.DataFrame(observed, columns=TARGETS)
    for i, target in enumerate(TARGETS):
        results[f'{target}_pred'] = np.asarray(predicted)[:, i]
    return results


class TestComputeErrors:

    def test_known_values(self):
        observed = pd.DataFrame({'rV_s': [0.2, 0.4], 'rV_p': [0.5, 0.5], 'rV_d': [0.3, 0.1]})
        predicted = pd.DataFrame({'rV_s': [0.3, 0.5], 'rV_p': [0.5, 0.3], 'rV_d': [0.2, 0.2]})

        metrics = compute_errors(observed, predicted).iloc[0]

        assert metrics['mean_diff_rV_s'] == pytest.approx(0.1)
        assert metrics['rmse_rV_s'] == pytest.approx(0.1)
        assert metrics['rel_rmse_rV_s'] == pytest.approx(0.1 / 0.3)
        assert metrics['mean_diff_rV_p'] == pytest.approx(-0.1)
        assert metrics['rmse_rV_p'] == pytest.approx(math.sqrt(0.02))
        assert metrics['mean_diff_rV_d'] == pytest.approx(0.0)
        assert metrics['rmse_rV_d'] == pytest.approx(0.1)

    def test_nine_columns(self):
        observed = pd.DataFrame({t: [0.3, 0.4] for t in TARGETS})

        metrics = compute_errors(observed, observed)

        assert metrics.shape == (1, 9)

    def test_rmse_zero_iff_perfect(self):
        rng = np.random.default_rng(0)
        observed = pd.DataFrame(rng.uniform(0.1, 1, size=(30, 3)), columns=TARGETS)
        perturbed = observed.copy()
        perturbed.iloc[5, 1] += 0.01

        perfect = compute_errors(observed, observed).iloc[0]
        off = compute_errors(observed, perturbed).iloc[0]

        for t in TARGETS:
            assert perfect[f'rmse_{t}'] == 0.0
        assert off['rmse_rV_p'] > 0.0
        assert (compute_errors(observed, perturbed).filter(like='rmse_') >= 0).all().all()

    def test_missing_values_skipped(self):
        observed = pd.DataFrame({'rV_s': [0.2, np.nan, 0.4], 'rV_p': [0.5] * 3, 'rV_d': [0.3] * 3})
        predicted = pd.DataFrame({'rV_s': [0.3, 0.9, 0.5], 'rV_p': [0.5] * 3, 'rV_d': [0.3] * 3})

        metrics = compute_errors(observed, predicted).iloc[0]

        assert metrics['mean_diff_rV_s'] == pytest.approx(0.1)
        assert metrics['rel_rmse_rV_s'] == pytest.approx(0.1 / 0.3)

    def test_zero_observed_mean_raises(self):
        observed = pd.DataFrame({'rV_s': [0.5, 0.5], 'rV_p': [0.5, 0.5], 'rV_d': [0.0, 0.0]})
        predicted = observed.copy()

        with pytest.raises(UndefinedMetricError) as excinfo:
            compute_errors(observed, predicted)

        assert excinfo.value.column == 'rV_d'

    def test_zero_observed_mean_as_nan(self):
        observed = pd.DataFrame({'rV_s': [0.5, 0.5], 'rV_p': [0.5, 0.5], 'rV_d': [0.0, 0.0]})
        predicted = observed.copy()
        predicted['rV_d'] = [0.1, 0.1]

        metrics = compute_errors(observed, predicted, zero_mean_policy='nan').iloc[0]

        assert math.isnan(metrics['rel_rmse_rV_d'])
        assert metrics['rmse_rV_d'] == pytest.approx(0.1)

    def test_unknown_policy(self):
        observed = pd.DataFrame({t: [0.3] for t in TARGETS})

        with pytest.raises(ValueError):
            compute_errors(observed, observed, zero_mean_policy='inf')


class TestProportionEvaluator:

    def setup_method(self):
        self.results = make_results(
            [[0.5, 0.3, 0.2], [0.2, 0.2, 0.6]],
            [[0.4, 0.4, 0.2], [0.3, 0.2, 0.5]],
        )

    def test_evaluate_and_compare(self):
        evaluator = ProportionEvaluator()
        evaluator.evaluate('plot', self.results)
        evaluator.evaluate('stand', self.results.iloc[:1])

        table = evaluator.get_comparison_table()

        assert list(table['level']) == ['plot', 'stand']
        assert list(table['n']) == [2, 1]

    def test_summary_one_row_per_class(self):
        evaluator = ProportionEvaluator()
        evaluator.evaluate('plot', self.results)

        summary = evaluator.get_summary_table('plot')

        assert list(summary['class']) == ['spruce', 'pine', 'deciduous']
        assert summary.loc[0, 'rmse'] == pytest.approx(0.1)

    def test_unknown_result_set(self):
        with pytest.raises(ValueError):
            ProportionEvaluator().get_summary_table('plot')


class TestPlots:

    def test_observed_vs_predicted_saved(self, tmp_path):
        rng = np.random.default_rng(0)
        obs = rng.dirichlet(np.ones(3), size=12)
        pred = np.clip(obs + rng.normal(scale=0.05, size=obs.shape), 0, 1)
        stands = make_results(obs, pred)
        path = tmp_path / 'plots' / 'obs_pred.png'

        fig = plot_observed_vs_predicted(stands, save_path=path)

        assert path.exists()
        assert len(fig.axes) == 3
        plt.close(fig)

    def test_single_stand_still_plots(self):
        stands = make_results([[0.5, 0.3, 0.2]], [[0.4, 0.4, 0.2]])

        fig = plot_observed_vs_predicted(stands)

        assert len(fig.axes) == 3
        plt.close(fig)

    def test_feature_importance_plot(self):
        importance = pd.DataFrame({'feature': ['a', 'b'], 'importance': [0.7, 0.3]})

        fig = plot_feature_importance(importance, 'random_forest', save=False)

        assert len(fig.axes) == 1
        plt.close(fig)
