"""
Tests for the feature schema and selection.
"""
import pytest

from species_proportions.exceptions import SchemaMismatchError
from species_proportions.features import (
    FeatureSchema, matches_naming_convention, select_features,
)


class TestNamingConventions:

    @pytest.mark.parametrize('column', [
        'H95_first', 'Hmax_last', 'D50_first', 'imean_last',
        'B4_summer', 'NDVI_spring', 'NDVI_ratio', 'H95_Norm',
    ])
    def test_predictor_names_match(self, column):
        assert matches_naming_convention(column)

    @pytest.mark.parametrize('column', [
        'plot_id', 'stand_id', 'H95', 'imean', 'Dominant', 'B4', 'rV_s',
    ])
    def test_other_names_do_not_match(self, column):
        assert not matches_naming_convention(column)

    def test_from_conventions_keeps_file_order(self, train_table, feature_columns):
        schema = FeatureSchema.from_conventions(list(train_table.columns) + ['comment'])

        assert schema.columns == feature_columns
        assert schema.version == 'discovered'

    def test_from_conventions_without_matches(self):
        with pytest.raises(SchemaMismatchError):
            FeatureSchema.from_conventions(['plot_id', 'stand_id', 'x'])


class TestFeatureSchema:

    def test_default_schema_is_declared(self):
        schema = FeatureSchema.default()

        assert schema.n_features > 0
        assert all(matches_naming_convention(c) for c in schema.columns)

    def test_rejects_duplicates(self):
        with pytest.raises(ValueError, match="Duplicate"):
            FeatureSchema(columns=['H95_first', 'H95_first'])

    def test_rejects_target_as_feature(self):
        with pytest.raises(ValueError):
            FeatureSchema(columns=['H95_first', 'rV_s'])

    def test_rejects_empty(self):
        with pytest.raises(ValueError):
            FeatureSchema(columns=[])

    def test_validate_names_table_and_column(self, val_table, feature_columns):
        schema = FeatureSchema(columns=feature_columns)
        df = val_table.drop(columns=['B4_summer'])

        with pytest.raises(SchemaMismatchError) as excinfo:
            schema.validate(df, 'validation plots')

        assert excinfo.value.table == 'validation plots'
        assert excinfo.value.column == 'B4_summer'

    def test_validate_checks_presence_only(self, val_table, feature_columns):
        # Value parsing belongs to data loading
        schema = FeatureSchema(columns=feature_columns)
        df = val_table.copy()
        df['H95_Norm'] = 'high'

        schema.validate(df, 'validation plots')


class TestSelectFeatures:

    def test_aligned_columns(self, train_table, val_table, feature_columns):
        schema = FeatureSchema(columns=feature_columns)
        # Extra columns in a different order in the validation table
        val = val_table[list(reversed(val_table.columns))].assign(extra=1.0)

        train, val = select_features(train_table, val, schema)

        assert list(train.columns) == list(val.columns)
        assert list(train.columns) == (
            ['plot_id', 'stand_id'] + feature_columns + ['rV_s', 'rV_p', 'rV_d']
        )

    def test_validation_missing_trained_feature(self, train_table, val_table, feature_columns):
        schema = FeatureSchema(columns=feature_columns)

        with pytest.raises(SchemaMismatchError) as excinfo:
            select_features(train_table, val_table.drop(columns=['H95_first']), schema)

        assert excinfo.value.table == 'validation plots'

    def test_rows_not_reordered(self, train_table, val_table, feature_columns):
        schema = FeatureSchema(columns=feature_columns)
        train, val = select_features(train_table, val_table, schema)

        assert list(val['plot_id']) == list(val_table['plot_id'])
