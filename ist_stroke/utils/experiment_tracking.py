"""
Experiment tracking utilities using MLflow.
"""

import mlflow
import logging
import time
from contextlib import nullcontext
from typing import Dict, Any, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_TRACKING_URI = "sqlite:///mlflow.db"

class ExperimentTracker:
    """MLflow experiment tracking wrapper."""

    def __init__(self, config: Dict[str, Any]):
        """Initialize experiment tracker from the ``mlflow`` section of a config.

        Tracking is best effort: if the backend cannot be reached or set up,
        a warning is logged and every later call becomes a no-op.
        """
        self.config = config
        mlflow_config = config.get('mlflow', {})
        self.tracking_uri = mlflow_config.get('tracking_uri', DEFAULT_TRACKING_URI)
        self.experiment_name = mlflow_config.get('experiment_name', 'ist_stroke')
        self.artifact_location = mlflow_config.get('artifact_location')
        self.log_models = mlflow_config.get('log_models', True)
        self.enabled = mlflow_config.get('enabled', True)

        if not self.enabled:
            logger.info("MLflow tracking disabled by config")
            return

        try:
            mlflow.set_tracking_uri(self.tracking_uri)
            self._set_experiment()
        except Exception as e:
            logger.warning(f"MLflow tracking unavailable at {self.tracking_uri}; continuing without it: {e}")
            self.enabled = False

    def _set_experiment(self):
        """Create or get the experiment, handling deleted experiments."""
        try:
            experiment_id = mlflow.create_experiment(self.experiment_name,
                                                     artifact_location=self.artifact_location)
        except Exception:
            experiment = mlflow.get_experiment_by_name(self.experiment_name)
            if experiment and experiment.lifecycle_stage != "deleted":
                experiment_id = experiment.experiment_id
            else:
                new_name = f"{self.experiment_name}_{int(time.time())}"
                try:
                    experiment_id = mlflow.create_experiment(new_name,
                                                             artifact_location=self.artifact_location)
                    self.experiment_name = new_name
                except Exception:
                    experiment_id = "0"

        if experiment_id and experiment_id != "0":
            mlflow.set_experiment(experiment_id=experiment_id)
        else:
            mlflow.set_experiment("Default")

    def start_run(self, run_name: Optional[str] = None, nested: bool = False):
        """Start MLflow run; a null context when tracking is off or the run cannot start."""
        if not self.enabled:
            return nullcontext()
        try:
            return mlflow.start_run(run_name=run_name, nested=nested)
        except Exception as e:
            logger.warning(f"Failed to start MLflow run {run_name}: {e}")
            return nullcontext()

    def log_params(self, params: Dict[str, Any], prefix: str = ""):
        """Log parameters to MLflow."""
        if not self.enabled:
            return
        flat_params = self._flatten_dict(params, prefix)
        for key, value in flat_params.items():
            try:
                mlflow.log_param(key, value)
            except Exception as e:
                logger.warning(f"Failed to log param {key}: {e}")

    def log_metrics(self, metrics: Dict[str, float], step: Optional[int] = None):
        """Log numeric metrics to MLflow."""
        if not self.enabled:
            return
        for key, value in metrics.items():
            if not isinstance(value, (int, float)):
                continue
            try:
                mlflow.log_metric(key, value, step=step)
            except Exception as e:
                logger.warning(f"Failed to log metric {key}: {e}")

    def log_artifacts(self, artifact_path: str):
        """Log artifacts to MLflow."""
        if not self.enabled:
            return
        try:
            mlflow.log_artifacts(artifact_path)
        except Exception as e:
            logger.warning(f"Failed to log artifacts: {e}")

    def log_dict(self, dictionary: Union[Dict[str, Any], Any], artifact_file: str):
        """Log dictionary as YAML artifact to MLflow."""
        if not self.enabled:
            return
        try:
            mlflow.log_dict(dictionary, artifact_file)
            logger.info(f"Dictionary logged as {artifact_file}")
        except Exception as e:
            logger.warning(f"Failed to log dictionary to MLflow: {e}")

    def log_model(self, model, model_name: str, input_example=None):
        """Log a fitted pipeline with the sklearn flavour."""
        if not (self.enabled and self.log_models):
            logger.info(f"Model logging disabled; skipping {model_name}")
            return
        try:
            kwargs = {'input_example': input_example} if input_example is not None else {}
            mlflow.sklearn.log_model(model, name=model_name, **kwargs)
        except Exception as e:
            logger.warning(f"Failed to log model {model_name}: {e}")

    def _flatten_dict(self, d: Dict[str, Any], prefix: str = "") -> Dict[str, str]:
        """Flatten nested dictionary for parameter logging."""
        items = []

        for key, value in d.items():
            new_key = f"{prefix}.{key}" if prefix else key

            if isinstance(value, dict):
                items.extend(self._flatten_dict(value, new_key).items())
            else:
                # Convert to string for MLflow
                items.append((new_key, str(value)))

        return dict(items)

