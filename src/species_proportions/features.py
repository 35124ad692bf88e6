"""
Feature selection for the remote sensing predictors.

The predictor set is declared up front as a FeatureSchema and checked
against every table. Selecting columns by naming convention is only used
to build a schema from a file header.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

import pandas as pd

from .config import (
    FEATURE_COLUMNS, FEATURE_SCHEMA_VERSION, PLOT_ID_COLUMN, STAND_ID_COLUMN,
    TARGET_COLUMNS, HEIGHT_PREFIX, DENSITY_PREFIX, INTENSITY_PREFIX,
    RETURN_MARKERS, SEASONS, RATIO_SUFFIX, NORM_SUFFIX,
)
from .exceptions import SchemaMismatchError


def matches_naming_convention(column: str) -> bool:
    """
    Check whether a column name follows the predictor naming conventions.

    ALS metrics start with H (height), D (density) or i (intensity) and end
    with a first/last return marker. Spectral metrics end with a season
    name, seasonal ratios with _ratio and normalized heights with _Norm.
    """
    if column.startswith((HEIGHT_PREFIX, DENSITY_PREFIX, INTENSITY_PREFIX)):
        if column.endswith(RETURN_MARKERS):
            return True
    if column.endswith(tuple(f"_{season}" for season in SEASONS)):
        return True
    return column.endswith((RATIO_SUFFIX, NORM_SUFFIX))


@dataclass
class FeatureSchema:
    """Ordered list of the predictor columns a model is trained on."""

    columns: List[str]
    version: str = FEATURE_SCHEMA_VERSION
    reserved: List[str] = field(
        default_factory=lambda: [PLOT_ID_COLUMN, STAND_ID_COLUMN] + TARGET_COLUMNS
    )

    def __post_init__(self):
        if not self.columns:
            raise ValueError("Feature schema must contain at least one column")
        duplicates = sorted({c for c in self.columns if self.columns.count(c) > 1})
        if duplicates:
            raise ValueError(f"Duplicate feature columns in schema: {duplicates}")
        clash = [c for c in self.columns if c in self.reserved]
        if clash:
            raise ValueError(f"Identifier/target columns cannot be features: {clash}")

    @classmethod
    def default(cls) -> "FeatureSchema":
        return cls(columns=list(FEATURE_COLUMNS), version=FEATURE_SCHEMA_VERSION)

    @classmethod
    def from_conventions(cls, columns: Iterable[str], version: str = "discovered") -> "FeatureSchema":
        """Build a schema from the columns of a header that follow the conventions."""
        reserved = [PLOT_ID_COLUMN, STAND_ID_COLUMN] + TARGET_COLUMNS
        selected = [
            col for col in columns
            if col not in reserved and matches_naming_convention(col)
        ]
        if not selected:
            raise SchemaMismatchError("no column follows the predictor naming conventions")
        return cls(columns=selected, version=version)

    def missing_columns(self, df: pd.DataFrame) -> List[str]:
        return [col for col in self.columns if col not in df.columns]

    def validate(self, df: pd.DataFrame, table: str) -> None:
        """Raise SchemaMismatchError if df lacks any schema column."""
        missing = self.missing_columns(df)
        if missing:
            raise SchemaMismatchError(
                f"{len(missing)} feature columns missing: {missing}",
                table=table, column=missing[0],
            )

    @property
    def n_features(self) -> int:
        return len(self.columns)


def select_features(
    df_train: pd.DataFrame,
    df_val: pd.DataFrame,
    schema: Optional[FeatureSchema] = None,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Restrict both tables to identifiers, schema features and targets.

    Args:
        df_train: Sample plot table.
        df_val: Validation plot table.
        schema: Feature schema. Defaults to the declared schema.

    Returns:
        Tuple of (train, validation) tables with identical column order.
    """
    schema = schema or FeatureSchema.default()

    print(f"\n🔧 Selecting {schema.n_features} features (schema '{schema.version}')...")
    schema.validate(df_train, "sample plots")
    schema.validate(df_val, "validation plots")

    columns = [PLOT_ID_COLUMN, STAND_ID_COLUMN] + schema.columns + TARGET_COLUMNS
    train = df_train[columns].copy()
    val = df_val[columns].copy()

    n_missing_train = int(train[schema.columns].isnull().sum().sum())
    n_missing_val = int(val[schema.columns].isnull().sum().sum())
    if n_missing_train or n_missing_val:
        print(f"  ⚠️  Missing feature values: train={n_missing_train}, validation={n_missing_val}")

    print(f"✅ Done! Train: {train.shape}, Validation: {val.shape}")
    return train, val
