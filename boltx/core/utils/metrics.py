"""
Shared Prometheus metrics for checkout scoring.

Centralized metric definitions so the predictors, the retraining job and
the API can update the same collectors without duplicate registration.
"""

from prometheus_client import Counter, Gauge, Histogram

# Prediction metrics
PREDICTIONS_TOTAL = Counter(
    'boltx_predictions_total',
    'Total abandonment predictions',
    ['risk_level', 'source']
)

RISK_SCORE_DISTRIBUTION = Histogram(
    'boltx_risk_score_distribution',
    'Distribution of abandonment risk scores',
    buckets=[0, 10, 20, 30, 40, 50, 60, 70, 80, 90, 100]
)

HISTORY_BOOSTS = Counter(
    'boltx_history_boosts_total',
    'Predictions boosted by a rising session trend'
)

HISTORY_STORE_ERRORS = Counter(
    'boltx_history_store_errors_total',
    'Session history store failures',
    ['operation']
)

# Forecast metrics
FORECASTS_GENERATED = Counter(
    'boltx_forecasts_generated_total',
    'Revenue forecasts generated',
    ['trend']
)

FORECAST_FALLBACKS = Counter(
    'boltx_forecast_fallbacks_total',
    'Revenue forecasts served from the flat-average fallback'
)

# Model evaluation metrics
RETRAIN_RUNS = Counter(
    'boltx_retrain_runs_total',
    'Model evaluation runs',
    ['status']
)

MODEL_QUALITY = Gauge(
    'boltx_model_quality',
    'Latest abandonment model evaluation scores',
    ['metric']
)

TRAINING_SAMPLES = Gauge(
    'boltx_training_samples',
    'Labelled samples in the latest evaluation'
)
