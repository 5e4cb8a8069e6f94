#!/usr/bin/env python3
"""
FastAPI Scoring Service for BoltX Checkout Analytics

Real-time checkout scoring service providing:
- Abandonment risk scoring from features or raw session events
- Session history smoothing (in-process or Redis)
- Revenue forecasting with fallback and accuracy reporting
- Model evaluation against labelled sessions
- Prometheus metrics and structured logging
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from boltx.core.forecasting.revenue import (
    ForecastModel,
    calculate_forecast_accuracy,
    forecast_with_fallback,
)
from boltx.core.models.features import AbandonmentPrediction
from boltx.core.predictors.enhanced import EnhancedAbandonmentPredictor
from boltx.core.processors.checkout import CheckoutFeatureBuilder
from boltx.core.processors.revenue import aggregate_daily_revenue
from boltx.core.stores.history import InMemoryHistoryStore, PredictionHistoryStore, RedisHistoryStore
from boltx.core.utils.metrics import PREDICTIONS_TOTAL, RISK_SCORE_DISTRIBUTION
from boltx.inference.config import ServiceConfig
from boltx.inference.schemas import (
    AbandonmentScoreRequest,
    AbandonmentScoreResponse,
    ErrorDetail,
    ErrorResponse,
    HealthResponse,
    HealthStatus,
    ModelMetricsResponse,
    RevenueForecastRequest,
    RevenueForecastResponse,
    RevenueForecastSummary,
    SessionHistoryResponse,
    SessionScoreRequest,
    TrainRequest,
)
from boltx.training.scheduler import RetrainScheduler, load_samples

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)
logger = structlog.get_logger()

# Global state
config: Optional[ServiceConfig] = None
history_store: Optional[PredictionHistoryStore] = None
predictor: Optional[EnhancedAbandonmentPredictor] = None
feature_builder: Optional[CheckoutFeatureBuilder] = None
forecast_model: Optional[ForecastModel] = None
retrain_scheduler: Optional[RetrainScheduler] = None
service_start_time = time.perf_counter()

# Prometheus metrics
REQUEST_COUNT = Counter(
    'boltx_api_requests_total',
    'Total API requests',
    ['method', 'endpoint', 'status']
)
REQUEST_DURATION = Histogram(
    'boltx_api_request_duration_seconds',
    'Request duration in seconds',
    ['endpoint']
)
ACTIVE_REQUESTS = Gauge(
    'boltx_api_active_requests',
    'Number of active requests'
)
ERROR_COUNT = Counter(
    'boltx_api_errors_total',
    'Total errors',
    ['error_type', 'endpoint']
)


def build_history_store(service_config: ServiceConfig) -> PredictionHistoryStore:
    """Create the configured session history backend."""
    history = service_config.history
    if history.backend == "redis":
        store = RedisHistoryStore.from_config(
            host=service_config.redis.host,
            port=service_config.redis.port,
            db=service_config.redis.db,
            password=service_config.redis.password,
            limit=history.limit,
            ttl_seconds=history.ttl_seconds,
            socket_timeout=service_config.redis.socket_timeout,
        )
        store.key_prefix = history.key_prefix
        if not store.health_check():
            logger.warning("Redis history store unreachable; predictions will not be smoothed")
        return store

    if history.backend != "memory":
        raise ValueError(f"Unsupported history backend: {history.backend}")
    return InMemoryHistoryStore(limit=history.limit, max_sessions=history.max_sessions)


def configure_log_level(level_name: str) -> str:
    """Apply the configured level to stdlib logging used by structlog."""
    log_level = level_name.upper()
    logging.basicConfig(format="%(message)s")
    logging.getLogger().setLevel(getattr(logging, log_level, logging.INFO))
    return log_level


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown."""
    global config, history_store, predictor, feature_builder, forecast_model, retrain_scheduler

    logger.info("Starting BoltX scoring service")
    try:
        config = ServiceConfig.from_env()
        log_level = configure_log_level(config.logging.level)
        logger.info("Configuration loaded",
                    service=config.logging.service_name,
                    environment=config.environment,
                    log_level=log_level)

        history_store = build_history_store(config)
        logger.info("History store initialized", backend=config.history.backend)

        predictor = EnhancedAbandonmentPredictor(
            weights=config.scoring.weights,
            config=config.scoring.enhancement,
            history_store=history_store,
        )
        feature_builder = CheckoutFeatureBuilder()
        forecast_model = ForecastModel(config.forecast)

        if config.retrain.data_path:
            data_path = config.retrain.data_path
            retrain_scheduler = predictor.retrain_model(
                lambda limit: load_samples(data_path, limit),
                interval_seconds=config.retrain.interval_seconds,
            )
            logger.info("Scheduled model evaluation started",
                        data_path=data_path,
                        interval_seconds=config.retrain.interval_seconds)

        logger.info("Service startup completed")
    except Exception as e:
        logger.error("Service startup failed", error=str(e))
        raise

    try:
        yield
    finally:
        logger.info("Shutting down scoring service")
        if retrain_scheduler:
            retrain_scheduler.stop(timeout=5.0)
            retrain_scheduler = None
        logger.info("Service shutdown completed")


# Initialize FastAPI app
app = FastAPI(
    title="BoltX Checkout Scoring API",
    description="Checkout abandonment risk scoring and revenue forecasting",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _now() -> datetime:
    return datetime.now()


@app.middleware("http")
async def request_middleware(request: Request, call_next):
    """Request middleware for logging, timing, and metrics."""
    start_time = time.perf_counter()
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    ACTIVE_REQUESTS.inc()

    method = request.method
    path = request.url.path
    status_code: int = 500
    response: Optional[Response] = None

    logger.info("Request started", request_id=request_id, method=method, path=path)

    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    except Exception as e:
        ERROR_COUNT.labels(error_type="unhandled", endpoint=path).inc()
        logger.exception("Request failed with exception", request_id=request_id, error=str(e))
        raise
    finally:
        ACTIVE_REQUESTS.dec()
        duration = time.perf_counter() - start_time

        REQUEST_COUNT.labels(method=method, endpoint=path, status=str(status_code)).inc()
        REQUEST_DURATION.labels(endpoint=path).observe(duration)

        logger.info("Request completed", request_id=request_id, status_code=status_code, duration_ms=duration * 1000.0)

        if response is not None:
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = f"{duration:.6f}"


# === Exception Handlers ===

def _error_response(request: Request, status_code: int, code: str, message: str, error_type: str) -> JSONResponse:
    error_detail = ErrorDetail(
        error_code=code,
        error_message=message,
        error_type=error_type,
        timestamp=_now(),
        request_id=getattr(request.state, 'request_id', None)
    )
    payload = ErrorResponse(error=error_detail)
    return JSONResponse(status_code=status_code, content=payload.model_dump(mode='json'))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors (422)."""
    ERROR_COUNT.labels(error_type="validation", endpoint=request.url.path).inc()
    logger.warning("Request validation failed",
                   request_id=getattr(request.state, 'request_id', None),
                   errors=str(exc.errors()))
    return _error_response(request, 422, "VALIDATION_ERROR",
                           f"Request validation failed: {exc.errors()}", "validation")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions (uses given status)."""
    ERROR_COUNT.labels(error_type="http", endpoint=request.url.path).inc()
    return _error_response(request, exc.status_code, f"HTTP_{exc.status_code}", str(exc.detail), "http")


def get_request_id(request: Request) -> str:
    """Get request ID from request state."""
    return getattr(request.state, 'request_id', 'unknown')


def get_predictor() -> EnhancedAbandonmentPredictor:
    if predictor is None:
        raise HTTPException(status_code=503, detail="Predictor not initialized")
    return predictor


def _record_prediction(prediction: AbandonmentPrediction, source: str) -> None:
    PREDICTIONS_TOTAL.labels(risk_level=prediction.risk_level.value, source=source).inc()
    RISK_SCORE_DISTRIBUTION.observe(prediction.risk_score)


# === Health and Monitoring Endpoints ===

@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Service health, including the history backend."""
    history_healthy = True
    backend = "memory"
    if isinstance(history_store, RedisHistoryStore):
        backend = "redis"
        history_healthy = history_store.health_check()

    predictor_ready = predictor is not None

    if predictor_ready and history_healthy:
        status = HealthStatus.HEALTHY
    elif predictor_ready:
        # Scoring still works without history smoothing
        status = HealthStatus.DEGRADED
    else:
        status = HealthStatus.UNHEALTHY

    metrics = predictor.get_metrics() if predictor else None
    components = {
        "history": {
            "status": "healthy" if history_healthy else "unhealthy",
            "backend": backend,
        },
        "model": {
            "status": "healthy" if predictor_ready else "unhealthy",
            "version": predictor.model_version if predictor else None,
            "last_trained": metrics.last_trained.isoformat() if metrics else None,
        },
        "retrain": {
            "status": "running" if retrain_scheduler and retrain_scheduler.running else "idle",
        },
    }

    return HealthResponse(
        status=status,
        timestamp=_now(),
        version=config.api.version if config else "unknown",
        components=components,
        uptime_seconds=time.perf_counter() - service_start_time,
    )


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


# === Abandonment Scoring ===

@app.post("/predict/abandonment", response_model=AbandonmentScoreResponse)
async def predict_abandonment(request: AbandonmentScoreRequest,
                              request_id: str = Depends(get_request_id),
                              model: EnhancedAbandonmentPredictor = Depends(get_predictor)):
    """Score a prepared feature snapshot."""
    start_time = time.perf_counter()

    prediction = model.predict(request.features, request.session_id)
    _record_prediction(prediction, source="features")

    latency_ms = (time.perf_counter() - start_time) * 1000.0
    logger.info("Abandonment risk scored",
                request_id=request_id,
                session_id=request.session_id,
                risk_score=prediction.risk_score,
                risk_level=prediction.risk_level.value,
                latency_ms=latency_ms)

    return AbandonmentScoreResponse(
        request_id=request_id,
        timestamp=_now(),
        model_version=prediction.model_version,
        latency_ms=latency_ms,
        session_id=request.session_id,
        prediction=prediction,
        features=request.features,
    )


@app.post("/predict/session", response_model=AbandonmentScoreResponse)
async def predict_session(request: SessionScoreRequest,
                          request_id: str = Depends(get_request_id),
                          model: EnhancedAbandonmentPredictor = Depends(get_predictor)):
    """Build features from a session's events, then score them."""
    start_time = time.perf_counter()

    total_events = len(request.events) + len(request.account_events)
    if config and total_events > config.api.max_batch_events:
        raise HTTPException(status_code=413, detail=f"Too many events (max {config.api.max_batch_events})")

    session_events = [e for e in request.events if e.session_id == request.session_id]
    if not session_events:
        raise HTTPException(status_code=404, detail="Session not found")

    account_history = feature_builder.build_account_history(
        request.account_events, exclude_session_id=request.session_id
    )
    features = feature_builder.build_features(
        session_events, now=request.evaluated_at, history=account_history
    )

    prediction = model.predict(features, request.session_id)
    _record_prediction(prediction, source="events")

    latency_ms = (time.perf_counter() - start_time) * 1000.0
    logger.info("Session risk scored",
                request_id=request_id,
                session_id=request.session_id,
                events=len(session_events),
                current_step=features.current_step.value,
                risk_score=prediction.risk_score,
                risk_level=prediction.risk_level.value,
                latency_ms=latency_ms)

    return AbandonmentScoreResponse(
        request_id=request_id,
        timestamp=_now(),
        model_version=prediction.model_version,
        latency_ms=latency_ms,
        session_id=request.session_id,
        prediction=prediction,
        features=features,
        account_history=account_history,
    )


@app.get("/sessions/{session_id}/history", response_model=SessionHistoryResponse)
async def get_session_history(session_id: str, model: EnhancedAbandonmentPredictor = Depends(get_predictor)):
    predictions = model.get_session_history(session_id)
    if not predictions:
        raise HTTPException(status_code=404, detail=f"No prediction history for session {session_id}")
    return SessionHistoryResponse(session_id=session_id, count=len(predictions), predictions=predictions)


@app.delete("/sessions/{session_id}/history")
async def clear_session_history(session_id: str, model: EnhancedAbandonmentPredictor = Depends(get_predictor)):
    model.clear_session_history(session_id)
    logger.info("Session history cleared", session_id=session_id)
    return {"session_id": session_id, "cleared": True}


# === Revenue Forecast ===

@app.post("/forecast/revenue", response_model=RevenueForecastResponse)
def forecast_revenue(request: RevenueForecastRequest, request_id: str = Depends(get_request_id)):
    """Forecast daily revenue from daily totals or completed-checkout events."""
    if forecast_model is None:
        raise HTTPException(status_code=503, detail="Forecast model not initialized")

    if request.historical is not None:
        historical = sorted(request.historical, key=lambda p: p.date)
    else:
        historical = aggregate_daily_revenue(request.events)

    days = request.days or forecast_model.config.default_days
    summary, used_fallback = forecast_with_fallback(forecast_model, historical, days)
    forecasts = summary.forecasts

    total_historical = sum(p.revenue for p in historical)
    total_forecast = sum(f.forecast for f in forecasts)

    accuracy = None
    if request.actuals:
        accuracy = calculate_forecast_accuracy(forecasts, request.actuals)

    logger.info("Revenue forecast computed",
                request_id=request_id,
                historical_days=len(historical),
                forecast_days=days,
                trend=summary.trend.value,
                fallback=used_fallback)

    return RevenueForecastResponse(
        request_id=request_id,
        summary=RevenueForecastSummary(
            total_historical_revenue=total_historical,
            avg_daily_revenue=total_historical / len(historical) if historical else 0.0,
            total_forecast_revenue=total_forecast,
            avg_forecast_revenue=total_forecast / len(forecasts) if forecasts else 0.0,
            forecast_7_revenue=sum(f.forecast for f in forecasts[:7]),
            forecast_30_revenue=sum(f.forecast for f in forecasts[:30]),
            forecast_90_revenue=sum(f.forecast for f in forecasts[:90]),
            trend=summary.trend,
            avg_growth=summary.avg_growth,
        ),
        historical=historical[-30:],
        forecast=forecasts,
        seasonality=summary.seasonality,
        accuracy=accuracy,
        fallback_used=used_fallback,
        forecast_days=days,
    )


# === Model Evaluation ===

@app.get("/model/metrics", response_model=ModelMetricsResponse)
async def model_metrics(model: EnhancedAbandonmentPredictor = Depends(get_predictor)):
    return ModelMetricsResponse(model_version=model.model_version, metrics=model.get_metrics())


@app.post("/model/train", response_model=ModelMetricsResponse)
def train_model(request: TrainRequest,
                request_id: str = Depends(get_request_id),
                model: EnhancedAbandonmentPredictor = Depends(get_predictor)):
    """Evaluate the scoring heuristic against labelled sessions."""
    model.train(request.samples)
    logger.info("Model evaluation requested", request_id=request_id, samples=len(request.samples))
    return ModelMetricsResponse(model_version=model.model_version, metrics=model.get_metrics())


@app.get("/")
async def root():
    """Root endpoint with service information."""
    return {
        "service": "BoltX Checkout Scoring API",
        "version": config.api.version if config else "unknown",
        "status": "healthy",
        "endpoints": {
            "health": "/health",
            "metrics": "/metrics",
            "docs": "/docs",
            "abandonment_scoring": "/predict/abandonment",
            "session_scoring": "/predict/session",
            "revenue_forecast": "/forecast/revenue",
            "model_metrics": "/model/metrics",
            "model_train": "/model/train",
            "session_history": "/sessions/{session_id}/history"
        }
    }


def main():
    import uvicorn

    service_config = ServiceConfig.from_env()
    uvicorn.run(app, host=service_config.api.host, port=service_config.api.port)


if __name__ == "__main__":
    main()
