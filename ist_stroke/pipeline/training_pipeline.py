"""
Outcome Modelling Pipeline

Fits and compares classifiers of the six-month dead-or-dependent outcome on
normalized IST records, then explains them with permutation importance,
partial dependence and (optionally) SHAP.
"""

from __future__ import annotations

import warnings
warnings.filterwarnings("ignore")
# Suppress specific MLflow deprecation warnings from their internal code
warnings.filterwarnings("ignore", message=".*artifact_path.*deprecated.*", category=FutureWarning)
warnings.filterwarnings("ignore", message=".*artifact_path.*deprecated.*", category=UserWarning)

import argparse
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import joblib
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import yaml

# ML & metrics
from imblearn.over_sampling import SMOTE
from imblearn.pipeline import Pipeline as ImbPipeline
from sklearn.ensemble import RandomForestClassifier
from sklearn.metrics import (
    accuracy_score, average_precision_score, f1_score,
    precision_score, recall_score, roc_auc_score,
)
from sklearn.model_selection import StratifiedKFold, train_test_split
from sklearn.neural_network import MLPClassifier

import lightgbm as lgb
import xgboost as xgb

# HPO
import optuna
from optuna.pruners import PercentilePruner
from optuna.samplers import TPESampler

from ist_stroke.interpretation import (
    partial_dependence_profiles,
    permutation_importance_table,
    plot_pdp,
    plot_roc_curves,
    plot_vip,
    shap_summary,
)
from ist_stroke.pipeline.feature_engineering import create_preprocessing_pipeline
from ist_stroke.pipeline.normalizer import (
    NORMALIZED_FIELDS, UnmappedValueWarning, coerce_categoricals, normalize_frame,
)
from ist_stroke.pipeline.preprocessing import DataValidator
from ist_stroke.utils.data_io import load_normalized, load_raw_trial_data
from ist_stroke.utils.experiment_tracking import ExperimentTracker
from ist_stroke.utils.model_utils import ModelComparator, ModelEvaluator, ThresholdOptimizer

# Data-quality warnings from the normalizer stay visible under the blanket filter above
warnings.filterwarnings("always", category=UnmappedValueWarning)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

TARGET_COL = "dead_or_dep"
DEFAULT_ALGORITHMS = ["random_forest", "neural_network", "xgboost", "lightgbm"]
DEFAULT_PDP_FEATURES = ["AGE", "RSBP", "RDELAY"]


def _to_builtin(obj):
    """Convert numpy types to native Python types for YAML serialization."""
    if isinstance(obj, dict):
        return {k: _to_builtin(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_builtin(v) for v in obj]
    if hasattr(obj, "item"):  # numpy scalar
        return obj.item()
    if hasattr(obj, "tolist"):  # numpy array
        return obj.tolist()
    return obj


# =====================
# StrokeOutcomePipeline
# =====================
class StrokeOutcomePipeline:
    """Train, evaluate and explain dead-or-dependent classifiers."""

    def __init__(self, config: Dict):
        self.config = config
        self.seed = int(config.get("random_seed", 42))
        self.models: Dict[str, ImbPipeline] = {}
        self.thresholds: Dict[str, float] = {}
        self.best_params: Dict[str, Dict[str, Any]] = {}

        # trackers & helpers
        self.experiment_tracker = ExperimentTracker(config)
        self.threshold_optimizer = ThresholdOptimizer(
            method=self.config.get("threshold", {}).get("method", "youden_j")
        )
        self.comparator = ModelComparator()

    @property
    def algorithms(self) -> List[str]:
        return list(self.config.get("models", {}).get("algorithms", DEFAULT_ALGORITHMS))

    # ---------- Data ----------
    def load_data(self, data_path: str) -> pd.DataFrame:
        """Load a raw IST export (normalized on the fly) or a cached normalized set."""
        p = Path(data_path)
        logger.info(f"Loading data from {p}")

        if p.suffix.lower() == ".parquet":
            df = load_normalized(p)
        else:
            df = load_raw_trial_data(p)
            if TARGET_COL in df.columns:
                df = coerce_categoricals(df[NORMALIZED_FIELDS])
            else:
                df = normalize_frame(df)

        logger.info(f"Loaded data shape: {df.shape}")
        if TARGET_COL in df.columns:
            prev = (df[TARGET_COL] == "yes").mean()
            logger.info(f"Dead-or-dependent prevalence: {prev:.3f}")
        return df

    def validate_data(self, df: pd.DataFrame) -> Dict[str, List[str]]:
        logger.info("Validating data quality...")
        validator = DataValidator()
        validator.setup_trial_rules()
        violations = validator.validate(df)
        if violations:
            logger.warning(f"Found {len(violations)} data quality issues")
            for feature, issues in violations.items():
                for issue in issues:
                    logger.warning(f"  {feature}: {issue}")
        else:
            logger.info("Data validation passed")
        return violations

    def prepare_features(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, pd.Series]:
        if TARGET_COL not in df.columns:
            raise ValueError(f"Target column '{TARGET_COL}' not found")
        y = (df[TARGET_COL] == "yes").astype(int).rename("target")
        X = df.drop(columns=[TARGET_COL])
        logger.info(f"Prepared features: {len(X.columns)} columns (excluded: {[TARGET_COL]})")
        return X, y

    # ---------- Splits ----------
    def split_data(self, X: pd.DataFrame, y: pd.Series):
        test_size = float(self.config.get("data", {}).get("test_size", 0.25))
        X_train, X_test, y_train, y_test = train_test_split(
            X, y, test_size=test_size, stratify=y, random_state=self.seed
        )
        logger.info(f"Train/test split: {len(X_train)} / {len(X_test)} records (test_size={test_size})")
        return (X_train.reset_index(drop=True), X_test.reset_index(drop=True),
                y_train.reset_index(drop=True), y_test.reset_index(drop=True))

    def create_cv_splits(self, X: pd.DataFrame, y: pd.Series) -> List[Tuple[np.ndarray, np.ndarray]]:
        cv_cfg = self.config.get("cross_validation", {})
        splitter = StratifiedKFold(
            n_splits=int(cv_cfg.get("n_splits", 5)),
            shuffle=True,
            random_state=self.seed,
        )
        return list(splitter.split(X, y))

    # ---------- Model construction ----------
    def create_model(self, algorithm: str, params: Optional[Dict[str, Any]] = None):
        model_cfg = self.config.get("models", {})
        params = {**model_cfg.get(algorithm, {}), **(params or {})}
        logger.info(f"Creating model: {algorithm}")

        if algorithm == "random_forest":
            params = {"n_estimators": 300, "n_jobs": -1, **params, "random_state": self.seed}
            return RandomForestClassifier(**params)

        if algorithm == "neural_network":
            if "hidden_layer_sizes" in params:
                params["hidden_layer_sizes"] = tuple(params["hidden_layer_sizes"])
            params = {"max_iter": 500, "early_stopping": True, **params, "random_state": self.seed}
            return MLPClassifier(**params)

        if algorithm == "xgboost":
            params = {
                "n_jobs": -1,
                "tree_method": "hist",
                "eval_metric": "auc",
                **params,
                "random_state": self.seed,
            }
            return xgb.XGBClassifier(**params)

        if algorithm == "lightgbm":
            params = {"n_jobs": -1, "verbose": -1, **params, "random_state": self.seed}
            return lgb.LGBMClassifier(**params)

        raise ValueError(f"Unknown algorithm: {algorithm}")

    def build_pipeline(self, algorithm: str, params: Optional[Dict[str, Any]] = None,
                       n_samples: Optional[int] = None) -> ImbPipeline:
        """Preprocessing steps, optional SMOTE and the classifier in one imblearn pipeline."""
        steps: List[Tuple[str, Any]] = []
        for i, transformer in enumerate(create_preprocessing_pipeline(self.config, algorithm)):
            step_name = f"step_{i}_{transformer.__class__.__name__.lower()}"
            steps.append((step_name, transformer))

        imb_cfg = self.config.get("imbalance", {})
        if imb_cfg.get("method") == "smote":
            sp = imb_cfg.get("smote", {})
            # Adjust k_neighbors based on dataset size to prevent SMOTE errors
            default_k = min(5, max(1, (n_samples or 250) // 50))
            steps.append(
                (
                    "smote",
                    SMOTE(
                        sampling_strategy=sp.get("sampling_strategy", "auto"),
                        k_neighbors=sp.get("k_neighbors", default_k),
                        random_state=sp.get("random_state", self.seed),
                    ),
                )
            )

        steps.append(("model", self.create_model(algorithm, params)))
        return ImbPipeline(steps)

    # ---------- HPO ----------
    def suggest_params(self, trial: optuna.Trial, algorithm: str) -> Dict[str, Any]:
        if algorithm == "random_forest":
            return {
                "n_estimators": trial.suggest_int("rf_n_estimators", 100, 600, step=100),
                "max_depth": trial.suggest_int("rf_max_depth", 3, 16),
                "min_samples_leaf": trial.suggest_int("rf_min_samples_leaf", 1, 50),
                "max_features": trial.suggest_categorical("rf_max_features", ["sqrt", "log2"]),
            }

        if algorithm == "neural_network":
            width = trial.suggest_int("nn_width", 8, 128, log=True)
            depth = trial.suggest_int("nn_depth", 1, 3)
            return {
                "hidden_layer_sizes": tuple([width] * depth),
                "alpha": trial.suggest_float("nn_alpha", 1e-5, 1e-1, log=True),
                "learning_rate_init": trial.suggest_float("nn_lr", 1e-4, 1e-2, log=True),
            }

        if algorithm == "xgboost":
            return {
                "n_estimators": trial.suggest_int("xgb_n_estimators", 100, 800, step=100),
                "max_depth": trial.suggest_int("xgb_max_depth", 2, 10),
                "learning_rate": trial.suggest_float("xgb_lr", 1e-3, 0.3, log=True),
                "subsample": trial.suggest_float("xgb_subsample", 0.6, 1.0),
                "colsample_bytree": trial.suggest_float("xgb_colsample_bytree", 0.6, 1.0),
                "min_child_weight": trial.suggest_float("xgb_min_child_weight", 1e-2, 10.0, log=True),
                "reg_lambda": trial.suggest_float("xgb_reg_lambda", 1e-2, 10.0, log=True),
            }

        if algorithm == "lightgbm":
            return {
                "n_estimators": trial.suggest_int("lgb_n_estimators", 100, 800, step=100),
                "num_leaves": trial.suggest_int("lgb_num_leaves", 8, 128),
                "learning_rate": trial.suggest_float("lgb_learning_rate", 1e-3, 0.3, log=True),
                "max_depth": trial.suggest_int("lgb_max_depth", 3, 12),
                "min_child_samples": trial.suggest_int("lgb_min_child_samples", 10, 200),
                "bagging_fraction": trial.suggest_float("lgb_bagging_fraction", 0.6, 1.0),
                "feature_fraction": trial.suggest_float("lgb_feature_fraction", 0.6, 1.0),
                "bagging_freq": 5,
            }

        raise ValueError(f"Unknown algorithm: {algorithm}")

    def _score(self, metric_name: str, y_true: pd.Series, p: np.ndarray) -> float:
        if metric_name == "pr_auc":
            return float(average_precision_score(y_true, p))
        if metric_name in ["f1", "precision", "recall", "accuracy"]:
            y_pred = (p >= 0.5).astype(int)
            if metric_name == "f1":
                return float(f1_score(y_true, y_pred, zero_division=0))
            if metric_name == "precision":
                return float(precision_score(y_true, y_pred, zero_division=0))
            if metric_name == "recall":
                return float(recall_score(y_true, y_pred, zero_division=0))
            return float(accuracy_score(y_true, y_pred))
        # Default to ROC-AUC
        return float(roc_auc_score(y_true, p))

    def hyperparameter_search(self, algorithm: str, X: pd.DataFrame, y: pd.Series) -> Dict[str, Any]:
        hpo_cfg = self.config.get("hpo", {})
        if not hpo_cfg.get("enabled", False):
            return {}

        start_time = time.time()
        metric_name = hpo_cfg.get("opt_metric", "roc_auc")
        n_trials = int(hpo_cfg.get("n_trials", 30))
        timeout = hpo_cfg.get("timeout_sec", None)
        cv_splits = self.create_cv_splits(X, y)

        pruner = PercentilePruner(50.0, n_startup_trials=5, n_warmup_steps=0)

        def objective(trial: optuna.Trial):
            params = self.suggest_params(trial, algorithm)
            trial.set_user_attr("model_params", params)
            pipe = self.build_pipeline(algorithm, params, n_samples=len(X))

            fold_scores: List[float] = []
            for fold, (tr, va) in enumerate(cv_splits, 1):
                pipe.fit(X.iloc[tr], y.iloc[tr])
                p_va = pipe.predict_proba(X.iloc[va])[:, 1]
                fold_scores.append(self._score(metric_name, y.iloc[va], p_va))
                trial.report(float(np.mean(fold_scores)), step=fold)
                if trial.should_prune():
                    raise optuna.TrialPruned()

            return float(np.mean(fold_scores))

        optuna.logging.set_verbosity(optuna.logging.WARNING)
        study = optuna.create_study(
            direction="maximize",
            pruner=pruner,
            sampler=TPESampler(seed=self.seed),
            study_name=f"{hpo_cfg.get('study_name', 'ist_hpo')}_{algorithm}",
        )
        study.optimize(objective, n_trials=n_trials, timeout=timeout, n_jobs=1, show_progress_bar=False)

        best = dict(study.best_trial.user_attrs["model_params"])
        self.experiment_tracker.log_params(study.best_trial.params, prefix="hpo")
        self.experiment_tracker.log_metrics({f"hpo_best_{metric_name}": study.best_value})

        elapsed_time = time.time() - start_time
        logger.info(f"[HPO] {algorithm}: best {metric_name}={study.best_value:.4f} "
                    f"after {len(study.trials)} trials in {elapsed_time:.2f} seconds")
        logger.info(f"[HPO] {algorithm}: best params {best}")
        return best

    # ---------- Training ----------
    def train_model(self, algorithm: str, X: pd.DataFrame, y: pd.Series) -> Dict[str, float]:
        logger.info(f"Starting model training: {algorithm}")
        start_time = time.time()

        best = self.hyperparameter_search(algorithm, X, y)
        self.best_params[algorithm] = best
        pipeline = self.build_pipeline(algorithm, best, n_samples=len(X))

        cv_splits = self.create_cv_splits(X, y)
        cv_scores = {"roc_auc": [], "pr_auc": [], "f1": [], "precision": [], "recall": [], "accuracy": []}
        oof = np.zeros(len(X), dtype=float)

        for fold, (train_idx, val_idx) in enumerate(cv_splits, 1):
            logger.info(f"Training fold {fold}/{len(cv_splits)}")
            pipeline.fit(X.iloc[train_idx], y.iloc[train_idx])
            p_va = pipeline.predict_proba(X.iloc[val_idx])[:, 1]
            oof[val_idx] = p_va
            y_va = y.iloc[val_idx]
            for metric in cv_scores:
                cv_scores[metric].append(self._score(metric, y_va, p_va))

        # Threshold from out-of-fold predictions (avoid overfit)
        self.thresholds[algorithm] = float(self.threshold_optimizer.optimize(y.to_numpy(), oof))
        logger.info(f"Optimal threshold for {algorithm} (from CV): {self.thresholds[algorithm]:.3f}")

        # Final fit on the full training set
        pipeline.fit(X, y)
        self.models[algorithm] = pipeline

        elapsed_time = time.time() - start_time
        logger.info(f"Trained {algorithm} in {elapsed_time:.2f} seconds")

        avg_scores = {f"cv_{m}": float(np.mean(v)) for m, v in cv_scores.items()}
        avg_scores.update({f"cv_{m}_std": float(np.std(v)) for m, v in cv_scores.items()})
        return avg_scores

    # ---------- Evaluation ----------
    def evaluate_model(self, algorithm: str, X: pd.DataFrame, y: pd.Series) -> Tuple[Dict[str, Any], pd.DataFrame]:
        """Test-set metrics at the tuned threshold, plus ROC curve points."""
        logger.info(f"Evaluating {algorithm} on {len(X)} held-out records...")
        if algorithm not in self.models:
            raise ValueError(f"Model not trained yet: {algorithm}")

        model = self.models[algorithm]
        threshold = self.thresholds.get(algorithm, 0.5)
        y_true = y.to_numpy()
        y_proba = model.predict_proba(X)[:, 1]
        y_pred = (y_proba >= threshold).astype(int)

        evaluator = ModelEvaluator()
        metrics: Dict[str, Any] = evaluator.calculate_metrics(y_true, y_pred, y_proba)
        metrics["optimal_threshold"] = float(threshold)
        self.comparator.add_model(algorithm, y_true, y_pred, y_proba)

        if "treatment" in X.columns:
            slices = evaluator.slice_analysis(y_true, y_pred, y_proba, X["treatment"].astype(object).to_numpy())
            metrics["by_treatment"] = {arm: {"roc_auc": m["roc_auc"], "sample_size": m["sample_size"]}
                                       for arm, m in slices.items()}

        return metrics, evaluator.roc_curve_points(y_true, y_proba, algorithm)

    # ---------- Explainability ----------
    def explain_models(self, X: pd.DataFrame, y: pd.Series, output_dir: Path,
                       enable_shap: bool = False) -> Dict[str, pd.DataFrame]:
        """Permutation importance and partial dependence for every trained model."""
        interp_cfg = self.config.get("interpretation", {})
        n_repeats = int(interp_cfg.get("n_repeats", 10))
        top_n = int(interp_cfg.get("top_n", 10))
        features = interp_cfg.get("pdp_features", DEFAULT_PDP_FEATURES)
        out = Path(output_dir) / "explain"
        out.mkdir(parents=True, exist_ok=True)

        vip_tables, pdp_tables, shap_tables = [], [], []
        for algorithm, model in self.models.items():
            vip_tables.append(permutation_importance_table(
                model, X, y, label=algorithm, n_repeats=n_repeats, random_state=self.seed
            ))
            pdp_tables.append(partial_dependence_profiles(model, X, features, label=algorithm))
            if enable_shap:
                try:
                    shap_tables.append(shap_summary(
                        model, X, label=algorithm, out_dir=out,
                        nsample=int(interp_cfg.get("shap_sample_size", 200)),
                        random_state=self.seed,
                    ))
                except Exception as e:
                    logger.warning(f"SHAP failed for {algorithm}: {e}")

        results = {
            "vip": pd.concat(vip_tables, ignore_index=True),
            "pdp": pd.concat(pdp_tables, ignore_index=True),
        }
        results["vip"].to_csv(out / "variable_importance.csv", index=False)
        results["pdp"].to_csv(out / "partial_dependence.csv", index=False)

        fig = plot_vip(*vip_tables, top_n=top_n)
        fig.savefig(out / "vip.png", dpi=150); plt.close(fig)
        if not results["pdp"].empty:
            fig = plot_pdp(*pdp_tables)
            fig.savefig(out / "pdp.png", dpi=150); plt.close(fig)

        if shap_tables:
            results["shap"] = pd.concat(shap_tables, ignore_index=True)

        logger.info(f"Explanation artifacts saved to {out}")
        return results

    # ---------- Artifact helpers ----------
    def save_artifacts(self, algorithm: str, output_dir: Path, metrics: Dict[str, Any],
                       roc_points: pd.DataFrame) -> Path:
        out = Path(output_dir) / algorithm
        out.mkdir(parents=True, exist_ok=True)
        logger.info(f"Saving {algorithm} artifacts to {out}")

        joblib.dump(self.models[algorithm], out / "model.joblib")
        (out / "optimal_threshold.txt").write_text(str(self.thresholds[algorithm]), encoding="utf-8")
        (out / "metrics.yaml").write_text(yaml.dump(_to_builtin(metrics)), encoding="utf-8")
        roc_points.to_csv(out / "roc_curve.csv", index=False)

        if self.best_params.get(algorithm):
            (out / "best_params.yaml").write_text(yaml.dump(_to_builtin(self.best_params[algorithm])),
                                                  encoding="utf-8")

        feature_names = getattr(self.models[algorithm].named_steps["model"], "feature_names_in_", None)
        if feature_names is not None:
            (out / "feature_names.txt").write_text("\n".join(map(str, feature_names)), encoding="utf-8")

        self.experiment_tracker.log_dict(_to_builtin(metrics), f"{algorithm}/metrics.yaml")
        return out

    # ---------- Orchestration ----------
    def run_pipeline(self, data_path: str, output_dir: str, enable_shap: bool = False) -> Dict[str, Dict[str, Any]]:
        logger.info("Starting outcome modelling pipeline...")
        start_time = time.time()
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)
        results: Dict[str, Dict[str, Any]] = {}

        with self.experiment_tracker.start_run(run_name="ist_outcome_models"):
            self.experiment_tracker.log_params(self.config)

            df = self.load_data(data_path)
            self.validate_data(df)
            X, y = self.prepare_features(df)
            X_train, X_test, y_train, y_test = self.split_data(X, y)

            roc_curves = []
            for algorithm in self.algorithms:
                with self.experiment_tracker.start_run(run_name=algorithm, nested=True):
                    cv_metrics = self.train_model(algorithm, X_train, y_train)
                    test_metrics, roc_points = self.evaluate_model(algorithm, X_test, y_test)
                    all_metrics = {**cv_metrics, **test_metrics}
                    self.experiment_tracker.log_metrics(all_metrics)

                    algo_dir = self.save_artifacts(algorithm, out, all_metrics, roc_points)
                    self.experiment_tracker.log_artifacts(str(algo_dir))
                    self.experiment_tracker.log_model(self.models[algorithm], algorithm)

                    roc_curves.append(roc_points)
                    results[algorithm] = all_metrics
                    logger.info(f"{algorithm}: test ROC-AUC {test_metrics['roc_auc']:.4f}, "
                                f"PR-AUC {test_metrics['pr_auc']:.4f}, F1 {test_metrics['f1_score']:.4f}")

            metric = self.config.get("reporting", {}).get("comparison_metric", "roc_auc")
            comparison = self.comparator.compare_models(metric)
            comparison.to_csv(out / "model_comparison.csv")
            logger.info(f"Best model by {metric}: {self.comparator.get_best_model(metric)}")

            fig = plot_roc_curves(pd.concat(roc_curves, ignore_index=True))
            fig.savefig(out / "roc_curves.png", dpi=150); plt.close(fig)

            if self.config.get("interpretation", {}).get("enabled", True):
                self.explain_models(X_test, y_test, out, enable_shap=enable_shap)
            else:
                logger.info("Skipping model interpretation")

            (out / "training_config.yaml").write_text(yaml.dump(_to_builtin(self.config)), encoding="utf-8")
            self.experiment_tracker.log_dict(_to_builtin(self.config), "config.yaml")
            self.experiment_tracker.log_artifacts(str(out))

        elapsed_time = time.time() - start_time
        logger.info(f"Pipeline completed successfully in {elapsed_time:.2f} seconds")
        return results


# =====================
# CLI entrypoint
# =====================

def main():
    parser = argparse.ArgumentParser(description="Train and compare IST outcome models")
    parser.add_argument("--config", type=str, required=True, help="Path to training configuration file")
    parser.add_argument("--data", type=str, required=True,
                        help="Path to the raw IST CSV export or a normalized parquet file")
    parser.add_argument("--output", type=str, default="./models", help="Output directory for artifacts")
    parser.add_argument("--enable-shap", action="store_true", help="Enable SHAP computation (disabled by default)")
    args = parser.parse_args()

    with open(args.config, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    np.random.seed(config.get("random_seed", 42))

    pipeline = StrokeOutcomePipeline(config)
    pipeline.run_pipeline(args.data, args.output, enable_shap=args.enable_shap)

    print("Training completed! Artifacts in:", args.output)


if __name__ == "__main__":
    main()
