"""
Shared fixtures: synthetic plot tables following the column conventions.
"""
import matplotlib
matplotlib.use('Agg')

import numpy as np
import pandas as pd
import pytest

FEATURES = ['H95_first', 'D50_first', 'imean_first', 'B4_summer', 'NDVI_ratio', 'H95_Norm']


def make_plot_table(n_plots=40, plots_per_stand=4, seed=0, id_offset=0):
    """Plots whose proportions depend smoothly on the features."""
    rng = np.random.default_rng(seed)
    X = rng.normal(size=(n_plots, len(FEATURES)))

    logits = np.column_stack([
        1.5 * X[:, 0] - 0.5 * X[:, 3],
        -1.0 * X[:, 0] + 1.0 * X[:, 1],
        0.8 * X[:, 4] + 0.3 * X[:, 2],
    ])
    props = np.exp(logits)
    props /= props.sum(axis=1, keepdims=True)

    df = pd.DataFrame(X, columns=FEATURES)
    df.insert(0, 'plot_id', [f'p{i + id_offset}' for i in range(n_plots)])
    df.insert(1, 'stand_id', [f's{(i + id_offset) // plots_per_stand}' for i in range(n_plots)])
    df['rV_s'] = props[:, 0]
    df['rV_p'] = props[:, 1]
    df['rV_d'] = props[:, 2]
    return df


@pytest.fixture
def train_table():
    return make_plot_table(n_plots=60, seed=1)


@pytest.fixture
def val_table():
    return make_plot_table(n_plots=20, seed=2, id_offset=1000)


@pytest.fixture
def csv_pair(tmp_path, train_table, val_table):
    train_path = tmp_path / 'sample_plots.csv'
    val_path = tmp_path / 'validation_plots.csv'
    train_table.to_csv(train_path, index=False)
    val_table.to_csv(val_path, index=False)
    return train_path, val_path


@pytest.fixture
def feature_columns():
    return list(FEATURES)


@pytest.fixture
def table_factory():
    return make_plot_table
