"""
Tree Species Proportion Pipeline

Predicts spruce, pine and deciduous volume proportions of field plots from
remote sensing metrics and evaluates them at plot and stand level.

Modules:
    - config: Configuration settings and hyperparameters
    - exceptions: Errors raised by the pipeline stages
    - data_loader: Data loading and initial inspection
    - features: Feature schema and selection
    - models: Model definitions, training and prediction
    - calibration: Linear calibration of predictions
    - postprocessing: Clipping and normalization of proportions
    - aggregation: Plot to stand aggregation
    - evaluation: Metrics and visualization
    - pipeline: End-to-end run
    - main: Command line entry point
"""

__version__ = "1.0.0"
__author__ = "Tree Proportion Project"
