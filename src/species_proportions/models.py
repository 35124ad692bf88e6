"""
Model definitions for predicting the three species proportions jointly.

Fixed hyperparameters, no search. All variants share one interface:

    model = create_model("random_forest").fit(X, Y)
    model.predict(X_new)                   # one row per input row
    model.predict_out_of_sample(X, Y)      # OOB / out-of-fold on training plots

Models:
1. RandomForest - multi-output random forest, out-of-bag estimates for free
2. XGBoost - one boosted regressor per class, out-of-fold estimates
3. Dirichlet - parametric compositional regression fitted by maximum likelihood
"""
import warnings
from pathlib import Path
from typing import Any, Dict, Optional, Union

import joblib
import numpy as np
import pandas as pd
from scipy.optimize import minimize
from scipy.special import digamma, gammaln
from sklearn.ensemble import RandomForestRegressor
from sklearn.model_selection import KFold
from sklearn.multioutput import MultiOutputRegressor
from sklearn.preprocessing import StandardScaler

from .config import (
    RANDOM_STATE, N_SPLITS, DEFAULT_ALGORITHM, MODELS_DIR,
    RANDOM_FOREST_PARAMS, XGBOOST_PARAMS, DIRICHLET_PARAMS,
)
from .exceptions import DataLoadError


class ProportionModel:
    """
    Base class for multi-output proportion regressors.

    Subclasses implement _fit/_predict on plain arrays; this class handles
    column bookkeeping, row order and out-of-fold prediction.
    """

    name = "base"
    # Estimators that cannot split on missing values set this to False
    allow_missing_features = True

    def __init__(self, random_state: int = RANDOM_STATE, n_splits: int = N_SPLITS,
                 params: Optional[Dict[str, Any]] = None):
        self.random_state = random_state
        self.n_splits = n_splits
        self.params = dict(params or {})
        self.feature_names_ = None
        self.target_names_ = None
        self.train_index_ = None

    @property
    def is_fitted(self) -> bool:
        return self.feature_names_ is not None

    def clone(self) -> "ProportionModel":
        """Unfitted copy with the same settings."""
        return type(self)(random_state=self.random_state, n_splits=self.n_splits,
                          params=self.params)

    def fit(self, X: pd.DataFrame, Y: pd.DataFrame) -> "ProportionModel":
        if len(X) != len(Y):
            raise ValueError(f"X has {len(X)} rows but Y has {len(Y)}")
        if len(X) == 0:
            raise ValueError("Cannot fit on an empty table")
        if not self.allow_missing_features and X.isna().to_numpy().any():
            raise ValueError(f"Model '{self.name}' cannot fit on missing feature values")

        self._fit(X.to_numpy(dtype=float), Y.to_numpy(dtype=float))
        self.feature_names_ = list(X.columns)
        self.target_names_ = list(Y.columns)
        self.train_index_ = X.index.copy()
        return self

    def predict(self, X: pd.DataFrame) -> pd.DataFrame:
        """Predict proportions; rows keep the order and index of X."""
        X = self._check_features(X)
        values = self._predict(X.to_numpy(dtype=float))
        return pd.DataFrame(values, index=X.index, columns=self.target_names_)

    def predict_out_of_sample(self, X: pd.DataFrame, Y: pd.DataFrame) -> pd.DataFrame:
        """
        Predictions for training plots made without those plots.

        The default is K-fold out-of-fold prediction with fresh copies of
        this model.
        """
        X = self._check_features(X)
        values = self._out_of_fold(X.to_numpy(dtype=float), Y.to_numpy(dtype=float))
        return pd.DataFrame(values, index=X.index, columns=self.target_names_)

    def _out_of_fold(self, X: np.ndarray, Y: np.ndarray,
                     rows: Optional[np.ndarray] = None) -> np.ndarray:
        n_samples = X.shape[0]
        n_splits = min(self.n_splits, n_samples)
        if n_splits < 2:
            raise ValueError("Out-of-fold prediction needs at least 2 training plots")

        oof = np.full(Y.shape, np.nan)
        folds = KFold(n_splits=n_splits, shuffle=True, random_state=self.random_state)
        for train_idx, test_idx in folds.split(X):
            if rows is not None:
                test_idx = test_idx[np.isin(test_idx, rows)]
                if len(test_idx) == 0:
                    continue
            fold_model = self.clone()
            fold_model._fit(X[train_idx], Y[train_idx])
            oof[test_idx] = fold_model._predict(X[test_idx])
        return oof

    def _check_features(self, X: pd.DataFrame) -> pd.DataFrame:
        if not self.is_fitted:
            raise ValueError(f"Model '{self.name}' must be fitted before predicting.")
        missing = [col for col in self.feature_names_ if col not in X.columns]
        if missing:
            raise ValueError(f"Missing feature columns: {missing}")
        return X[self.feature_names_]

    @property
    def feature_importances_(self) -> np.ndarray:
        raise NotImplementedError

    def _fit(self, X: np.ndarray, Y: np.ndarray) -> None:
        raise NotImplementedError

    def _predict(self, X: np.ndarray) -> np.ndarray:
        raise NotImplementedError


class RandomForestProportionModel(ProportionModel):
    """Multi-output random forest; all three proportions share the trees."""

    name = "random_forest"

    def _fit(self, X: np.ndarray, Y: np.ndarray) -> None:
        params = dict(RANDOM_FOREST_PARAMS)
        params.update(self.params)
        self.estimator_ = RandomForestRegressor(
            bootstrap=True,
            oob_score=True,
            random_state=self.random_state,
            n_jobs=-1,
            **params
        )
        with warnings.catch_warnings():
            # Reported below, per plot, by predict_out_of_sample
            warnings.filterwarnings('ignore', message='Some inputs do not have OOB scores')
            self.estimator_.fit(X, Y)

    def _predict(self, X: np.ndarray) -> np.ndarray:
        return self.estimator_.predict(X).reshape(X.shape[0], -1)

    def _oob_counts(self, n_samples: int) -> np.ndarray:
        """Number of trees for which each training plot was out of bag."""
        counts = np.zeros(n_samples, dtype=int)
        for samples in self.estimator_.estimators_samples_:
            in_bag = np.zeros(n_samples, dtype=bool)
            in_bag[samples] = True
            counts += ~in_bag
        return counts

    def predict_out_of_sample(self, X: pd.DataFrame, Y: pd.DataFrame) -> pd.DataFrame:
        """
        Out-of-bag predictions when X is the training table.

        Plots that were in every bootstrap sample get out-of-fold
        predictions instead. For any other table, out-of-fold throughout.
        """
        X = self._check_features(X)
        if not X.index.equals(self.train_index_):
            return super().predict_out_of_sample(X, Y)

        oob = np.asarray(self.estimator_.oob_prediction_, dtype=float).reshape(len(X), -1)
        no_oob = np.flatnonzero(self._oob_counts(len(X)) == 0)
        if len(no_oob) > 0:
            warnings.warn(
                f"{len(no_oob)} plots have no out-of-bag estimate; "
                f"using out-of-fold predictions for them"
            )
            oof = self._out_of_fold(X.to_numpy(dtype=float), Y.to_numpy(dtype=float), rows=no_oob)
            oob[no_oob] = oof[no_oob]

        return pd.DataFrame(oob, index=X.index, columns=self.target_names_)

    @property
    def oob_score_(self) -> float:
        return float(self.estimator_.oob_score_)

    @property
    def feature_importances_(self) -> np.ndarray:
        return self.estimator_.feature_importances_


class XGBoostProportionModel(ProportionModel):
    """One gradient boosted regressor per proportion."""

    name = "xgboost"

    def _fit(self, X: np.ndarray, Y: np.ndarray) -> None:
        from xgboost import XGBRegressor

        params = dict(XGBOOST_PARAMS)
        params.update(self.params)
        self.estimator_ = MultiOutputRegressor(XGBRegressor(
            objective='reg:squarederror',
            random_state=self.random_state,
            n_jobs=-1,
            verbosity=0,
            **params
        ))
        self.estimator_.fit(X, Y)

    def _predict(self, X: np.ndarray) -> np.ndarray:
        return self.estimator_.predict(X)

    @property
    def feature_importances_(self) -> np.ndarray:
        return np.mean([est.feature_importances_ for est in self.estimator_.estimators_], axis=0)


class DirichletRegressionModel(ProportionModel):
    """
    Dirichlet regression with a log link per class.

    alpha_k = exp(x . beta_k) on standardized features; the predicted
    proportions are the Dirichlet means alpha_k / sum(alpha), so every
    prediction sums to one. Observed values of exactly 0 or 1 are squeezed
    into the open interval with the Smithson-Verkuilen transform.
    """

    name = "dirichlet"
    allow_missing_features = False

    _MAX_ETA = 30.0

    def _fit(self, X: np.ndarray, Y: np.ndarray) -> None:
        params = dict(DIRICHLET_PARAMS)
        params.update(self.params)

        self.scaler_ = StandardScaler().fit(X)
        Z = self._design(X)
        log_y = np.log(self._squeeze(Y))
        n_samples, n_coef = Z.shape
        n_classes = Y.shape[1]
        l2 = params['l2_penalty']

        # Intercepts are not penalized
        penalty_mask = np.ones((n_coef, n_classes))
        penalty_mask[0] = 0.0

        def objective(beta_flat):
            B = beta_flat.reshape(n_coef, n_classes)
            alpha = np.exp(np.clip(Z @ B, -self._MAX_ETA, self._MAX_ETA))
            total = alpha.sum(axis=1)

            log_lik = (gammaln(total).sum() - gammaln(alpha).sum()
                       + ((alpha - 1.0) * log_y).sum())
            grad_eta = alpha * (digamma(total)[:, None] - digamma(alpha) + log_y)

            loss = -log_lik / n_samples + 0.5 * l2 * np.sum(penalty_mask * B ** 2)
            grad = -(Z.T @ grad_eta) / n_samples + l2 * penalty_mask * B
            return loss, grad.ravel()

        result = minimize(
            objective,
            np.zeros(n_coef * n_classes),
            jac=True,
            method='L-BFGS-B',
            tol=params['tol'],
            options={'maxiter': params['max_iter']},
        )
        if not (np.isfinite(result.fun) and np.all(np.isfinite(result.x))):
            raise ValueError(f"Dirichlet regression failed: {result.message}")
        if not result.success:
            warnings.warn(f"Dirichlet regression did not converge: {result.message}")

        self.coef_ = result.x.reshape(n_coef, n_classes)
        self.log_likelihood_ = -result.fun * n_samples
        self.n_iter_ = result.nit

    def _design(self, X: np.ndarray) -> np.ndarray:
        Z = self.scaler_.transform(X)
        return np.column_stack([np.ones(X.shape[0]), Z])

    @staticmethod
    def _squeeze(Y: np.ndarray) -> np.ndarray:
        n_samples, n_classes = Y.shape
        Y = np.clip(Y, 0.0, None)
        totals = Y.sum(axis=1, keepdims=True)
        # Rows without any volume carry no composition information
        Y = np.where(totals > 0, Y / np.where(totals > 0, totals, 1.0), 1.0 / n_classes)
        return (Y * (n_samples - 1) + 1.0 / n_classes) / n_samples

    def _predict(self, X: np.ndarray) -> np.ndarray:
        eta = np.clip(self._design(X) @ self.coef_, -self._MAX_ETA, self._MAX_ETA)
        alpha = np.exp(eta)
        return alpha / alpha.sum(axis=1, keepdims=True)

    @property
    def feature_importances_(self) -> np.ndarray:
        # Mean absolute standardized coefficient, intercept excluded
        return np.abs(self.coef_[1:]).mean(axis=1)


MODEL_CLASSES = {
    RandomForestProportionModel.name: RandomForestProportionModel,
    XGBoostProportionModel.name: XGBoostProportionModel,
    DirichletRegressionModel.name: DirichletRegressionModel,
}


def create_model(
    algorithm: str = DEFAULT_ALGORITHM,
    random_state: int = RANDOM_STATE,
    params_override: Optional[Dict[str, Any]] = None,
) -> ProportionModel:
    """Create an unfitted model by algorithm name."""
    if algorithm not in MODEL_CLASSES:
        raise ValueError(f"Unknown algorithm '{algorithm}'. Available: {list(MODEL_CLASSES)}")
    return MODEL_CLASSES[algorithm](random_state=random_state, params=params_override)


def train_model(
    X_train: pd.DataFrame,
    Y_train: pd.DataFrame,
    algorithm: str = DEFAULT_ALGORITHM,
    random_state: int = RANDOM_STATE,
    params_override: Optional[Dict[str, Any]] = None,
) -> ProportionModel:
    """
    Fit one model on the sample plots.

    Args:
        X_train: Feature table.
        Y_train: Observed proportions, one column per class.
        algorithm: One of MODEL_CLASSES.
        random_state: Seed; the same seed gives the same model.
        params_override: Hyperparameters replacing the fixed defaults.

    Returns:
        Fitted model.
    """
    model = create_model(algorithm, random_state=random_state, params_override=params_override)
    if not model.allow_missing_features:
        incomplete = X_train.columns[X_train.isna().any()].tolist()
        if incomplete:
            raise DataLoadError(
                f"{algorithm} needs complete features, "
                f"{int(X_train[incomplete[0]].isna().sum())} plots lack a value",
                table="sample plots", column=incomplete[0],
            )

    print(f"🚀 Training {algorithm} on {len(X_train)} plots, {X_train.shape[1]} features...",
          end=" ", flush=True)
    model.fit(X_train, Y_train)

    if isinstance(model, RandomForestProportionModel):
        print(f"Done! OOB R²: {model.oob_score_:.4f}")
    else:
        print("Done!")
    return model


def predict_proportions(
    model: ProportionModel,
    X: pd.DataFrame,
    out_of_sample: bool = False,
    Y: Optional[pd.DataFrame] = None,
) -> pd.DataFrame:
    """
    Predict proportions for any plot table.

    With out_of_sample=True, X must be the training table and Y its observed
    proportions; the predictions are then OOB or out-of-fold estimates.
    """
    if out_of_sample:
        if Y is None:
            raise ValueError("Out-of-sample prediction needs the observed proportions Y")
        return model.predict_out_of_sample(X, Y)
    return model.predict(X)


def get_feature_importance(model: ProportionModel) -> pd.DataFrame:
    """Get feature importance from a fitted model."""
    if not model.is_fitted:
        raise ValueError(f"Model '{model.name}' must be fitted first.")

    importance_df = pd.DataFrame({
        'feature': model.feature_names_,
        'importance': model.feature_importances_,
    })
    importance_df = importance_df.sort_values('importance', ascending=False)
    return importance_df.reset_index(drop=True)


def save_model(
    model: ProportionModel,
    path: Optional[Union[str, Path]] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> Path:
    """Save the model and its run settings as one joblib bundle."""
    path = Path(path) if path is not None else MODELS_DIR / f"{model.name}_model.joblib"
    path.parent.mkdir(parents=True, exist_ok=True)

    bundle = {
        "model_name": model.name,
        "model": model,
        "feature_names": model.feature_names_,
        "target_names": model.target_names_,
        "random_state": model.random_state,
    }
    bundle.update(extra or {})
    joblib.dump(bundle, path)
    print(f"✅ Saved {model.name} model bundle to {path}")
    return path


def load_model(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a bundle written by save_model."""
    bundle = joblib.load(path)
    if not isinstance(bundle, dict) or "model" not in bundle:
        raise ValueError(f"{path} is not a model bundle")
    print(f"✅ Loaded {bundle['model_name']} from {path}")
    return bundle
