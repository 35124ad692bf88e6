"""
End-to-end tests of the pipeline and the command line entry point.
"""
import numpy as np
import pandas as pd
import pytest

from species_proportions.exceptions import DataLoadError, SchemaMismatchError
from species_proportions.features import FeatureSchema
from species_proportions.main import main
from species_proportions.pipeline import run_pipeline

TARGETS = ['rV_s', 'rV_p', 'rV_d']
PRED = [f'{t}_pred' for t in TARGETS]


class TestRunPipeline:

    @pytest.mark.parametrize('algorithm', ['random_forest', 'dirichlet'])
    @pytest.mark.parametrize('calibrate', [False, True])
    def test_outputs(self, csv_pair, feature_columns, val_table, algorithm, calibrate):
        result = run_pipeline(
            *csv_pair,
            schema=FeatureSchema(columns=feature_columns),
            algorithm=algorithm,
            calibrate=calibrate,
            make_plots=False,
            verbose=False,
        )

        assert list(result.results['plot_id']) == list(val_table['plot_id'])
        np.testing.assert_allclose(result.results[PRED].sum(axis=1), 1.0, atol=1e-6)
        assert ((result.results[PRED] >= 0) & (result.results[PRED] <= 1)).all().all()

        assert len(result.stands) == val_table['stand_id'].nunique()
        assert result.plot_metrics.shape == (1, 9)
        assert result.stand_metrics.shape == (1, 9)
        assert bool(result.calibrations) == calibrate

    def test_discovered_schema(self, csv_pair, feature_columns):
        result = run_pipeline(*csv_pair, discover_features=True, make_plots=False, verbose=False)

        assert result.schema.columns == feature_columns
        assert result.model.feature_names_ == feature_columns

    def test_default_schema_mismatch(self, csv_pair):
        # The synthetic tables do not carry the full declared schema
        with pytest.raises(SchemaMismatchError):
            run_pipeline(*csv_pair, make_plots=False, verbose=False)

    def test_validation_plot_without_observation(self, tmp_path, train_table, val_table,
                                                 feature_columns):
        val = val_table.copy()
        val.loc[0, 'rV_d'] = None
        train_table.to_csv(tmp_path / 'train.csv', index=False)
        val.to_csv(tmp_path / 'val.csv', index=False)

        result = run_pipeline(tmp_path / 'train.csv', tmp_path / 'val.csv',
                              schema=FeatureSchema(columns=feature_columns),
                              make_plots=False, verbose=False)

        assert len(result.results) == len(val_table)
        assert np.isfinite(result.plot_metrics.to_numpy()).all()

    def test_discovered_text_feature(self, tmp_path, train_table, val_table):
        train = train_table.copy()
        train['B4_summer'] = train['B4_summer'].astype(object)
        train.loc[9, 'B4_summer'] = 'n/a'
        train.to_csv(tmp_path / 'train.csv', index=False)
        val_table.to_csv(tmp_path / 'val.csv', index=False)

        with pytest.raises(DataLoadError, match="row 9") as excinfo:
            run_pipeline(tmp_path / 'train.csv', tmp_path / 'val.csv',
                         discover_features=True, make_plots=False, verbose=False)
        assert excinfo.value.column == 'B4_summer'

    def test_dirichlet_incomplete_training_features(self, tmp_path, train_table, val_table,
                                                    feature_columns):
        train = train_table.copy()
        train.loc[3, 'NDVI_ratio'] = None
        train.to_csv(tmp_path / 'train.csv', index=False)
        val_table.to_csv(tmp_path / 'val.csv', index=False)

        with pytest.raises(DataLoadError, match="complete features"):
            run_pipeline(tmp_path / 'train.csv', tmp_path / 'val.csv',
                         schema=FeatureSchema(columns=feature_columns), algorithm='dirichlet',
                         make_plots=False, verbose=False)

    def test_results_and_plot_written(self, csv_pair, feature_columns, tmp_path):
        output = tmp_path / 'out' / 'results.csv'
        figure = tmp_path / 'out' / 'figure.png'

        result = run_pipeline(
            *csv_pair,
            schema=FeatureSchema(columns=feature_columns),
            output_path=output,
            plot_path=figure,
            verbose=False,
        )

        saved = pd.read_csv(output)
        assert list(saved.columns) == ['plot_id', 'stand_id'] + TARGETS + PRED
        assert len(saved) == len(result.results)
        assert result.figure_path == figure
        assert figure.exists()

    def test_same_seed_same_results(self, csv_pair, feature_columns):
        kwargs = dict(schema=FeatureSchema(columns=feature_columns), make_plots=False,
                      verbose=False, random_state=3)

        first = run_pipeline(*csv_pair, **kwargs)
        second = run_pipeline(*csv_pair, **kwargs)

        pd.testing.assert_frame_equal(first.results, second.results)


class TestMain:

    def test_success(self, csv_pair, tmp_path):
        output = tmp_path / 'results.csv'
        model_path = tmp_path / 'model.joblib'

        status = main([
            '--train-path', str(csv_pair[0]),
            '--val-path', str(csv_pair[1]),
            '--discover-features',
            '--calibrate',
            '--no-plots',
            '--output', str(output),
            '--save-model', str(model_path),
        ])

        assert status == 0
        assert output.exists()
        assert model_path.exists()

    def test_failure_exit_status(self, tmp_path, capsys):
        status = main([
            '--train-path', str(tmp_path / 'missing.csv'),
            '--val-path', str(tmp_path / 'missing_too.csv'),
            '--no-plots',
        ])

        assert status == 1
        assert '[data loading]' in capsys.readouterr().out
