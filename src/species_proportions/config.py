"""
Configuration settings for the tree species proportion pipeline.

Fixed hyperparameters (no grid search). Every pipeline function takes the
values below as keyword defaults, so a run can override any of them.
"""
from pathlib import Path

# Project paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "data"
TRAIN_DATA_PATH = DATA_DIR / "sample_plots.csv"
VALIDATION_DATA_PATH = DATA_DIR / "validation_plots.csv"
OUTPUT_DIR = PROJECT_ROOT / "output"
MODELS_DIR = OUTPUT_DIR / "models"
PLOTS_DIR = OUTPUT_DIR / "plots"
RESULTS_PATH = OUTPUT_DIR / "validation_results.csv"

# Data settings
CSV_SEPARATOR = ","
PLOT_ID_COLUMN = "plot_id"
STAND_ID_COLUMN = "stand_id"
RANDOM_STATE = 42

# Observed volume proportions: spruce, pine, deciduous
TARGET_COLUMNS = ["rV_s", "rV_p", "rV_d"]
CLASS_NAMES = {"rV_s": "spruce", "rV_p": "pine", "rV_d": "deciduous"}
PREDICTION_SUFFIX = "_pred"

# Run options
ALGORITHMS = ["random_forest", "xgboost", "dirichlet"]
DEFAULT_ALGORITHM = "random_forest"
APPLY_CALIBRATION = False
DISPLAY_PRECISION = 2

# Calibration: slopes closer to zero than this cannot be inverted
MIN_CALIBRATION_SLOPE = 1e-6

# Normalization
NORMALIZATION_TOLERANCE = 1e-6
ZERO_ROW_POLICY = "keep"  # "keep" or "uniform"

# Relative RMSE with a zero observed mean: "raise" or "nan"
ZERO_MEAN_POLICY = "raise"

# Out-of-fold predictions (non-bagged models, rows without OOB estimates)
N_SPLITS = 5

# ============================================================================
# FEATURE SCHEMA
# ============================================================================

# Naming conventions of the remote sensing metrics
HEIGHT_PREFIX = "H"
DENSITY_PREFIX = "D"
INTENSITY_PREFIX = "i"
RETURN_MARKERS = ("_first", "_last")
SEASONS = ("spring", "summer", "autumn", "winter")
RATIO_SUFFIX = "_ratio"
NORM_SUFFIX = "_Norm"

FEATURE_SCHEMA_VERSION = "als_s2_v1"

FEATURE_COLUMNS = [
    # ALS height percentiles (first and last returns)
    'H10_first', 'H50_first', 'H80_first', 'H95_first', 'Hmax_first',
    'H50_last', 'H95_last',
    # ALS canopy densities
    'D20_first', 'D50_first', 'D80_first', 'D50_last',
    # ALS intensities
    'imean_first', 'isd_first', 'imean_last',
    # Sentinel-2 bands per season
    'B2_spring', 'B3_spring', 'B4_spring', 'B8_spring',
    'B2_summer', 'B3_summer', 'B4_summer', 'B8_summer', 'B11_summer',
    'NDVI_spring', 'NDVI_summer',
    # Seasonal ratios
    'NDVI_ratio', 'B8_ratio',
    # Normalized heights
    'H50_Norm', 'H95_Norm',
]

# ============================================================================
# FIXED HYPERPARAMETERS
# ============================================================================

RANDOM_FOREST_PARAMS = {
    'n_estimators': 500,
    'max_features': 0.33,
    'min_samples_leaf': 5,
}

XGBOOST_PARAMS = {
    'n_estimators': 300,
    'max_depth': 4,
    'learning_rate': 0.05,
    'subsample': 0.8,
    'colsample_bytree': 0.8,
    'reg_alpha': 0.1,
    'reg_lambda': 1.0,
}

DIRICHLET_PARAMS = {
    'l2_penalty': 1e-3,
    'max_iter': 1000,
    'tol': 1e-8,
}
