#!/usr/bin/env python3
"""
Model Evaluation Scheduler

Re-runs the abandonment model evaluation at a fixed interval so dashboard
quality metrics track the latest labelled sessions.

Usage:
    boltx-retrain --data samples.jsonl --interval 86400
    boltx-retrain --data samples.jsonl --once
"""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

import click
import structlog

from boltx.core.models.features import HistoricalTrainingData
from boltx.core.utils.metrics import RETRAIN_RUNS

logger = logging.getLogger(__name__)


class RetrainScheduler:
    """Runs a job now and then every `interval_seconds` until stopped.

    Each run is independent and replaces the previous result wholesale.
    Runs do not overlap within one scheduler, but separate schedulers
    sharing a predictor are not coordinated.
    """

    def __init__(self, job: Callable[[], object], interval_seconds: float, name: str = "boltx-retrain"):
        self.job = job
        self.interval_seconds = interval_seconds
        self.name = name
        self.last_run: Optional[datetime] = None
        self.last_success: Optional[datetime] = None
        self.run_count = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, run_immediately: bool = True) -> "RetrainScheduler":
        """Run the job once (synchronously) and schedule the following runs."""
        if self.running:
            logger.warning(f"Scheduler {self.name} already running")
            return self

        logger.info(f"Starting scheduler {self.name} with {self.interval_seconds}s interval")
        self._stop_event.clear()

        if run_immediately:
            self.run_once()

        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        return self

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the loop to exit and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            logger.info(f"Scheduler {self.name} stopped after {self.run_count} runs")
        self._thread = None

    def run_once(self) -> bool:
        """Execute a single run."""
        start_time = datetime.now()
        self.last_run = start_time
        self.run_count += 1

        try:
            result = self.job()
        except Exception as e:
            RETRAIN_RUNS.labels(status="error").inc()
            logger.error(f"Scheduled run failed: {e}")
            return False

        if result is False:
            RETRAIN_RUNS.labels(status="skipped").inc()
            logger.warning("Scheduled run produced no result")
            return False

        self.last_success = datetime.now()
        duration = (self.last_success - start_time).total_seconds()
        RETRAIN_RUNS.labels(status="success").inc()
        logger.info(f"Scheduled run completed in {duration:.2f}s")
        return True

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            self.run_once()

    def wait(self) -> None:
        """Block until the scheduler is stopped."""
        while self.running:
            self._stop_event.wait(1.0)


def load_samples(path: Path, limit: Optional[int] = None) -> List[HistoricalTrainingData]:
    """Load labelled sessions from a JSON-lines file, newest last."""
    samples = []
    with open(path, 'r') as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                samples.append(HistoricalTrainingData.model_validate(json.loads(line)))
            except ValueError as e:
                logger.warning(f"Skipping invalid sample on line {line_number}: {e}")

    if limit is not None:
        samples = samples[-limit:]
    return samples


@click.command()
@click.option('--data', 'data_path', required=True, type=click.Path(exists=True, path_type=Path),
              help='JSON-lines file of labelled sessions')
@click.option('--interval', default=86400, help='Evaluation interval in seconds')
@click.option('--once', is_flag=True, help='Run a single evaluation and exit')
def main(data_path: Path, interval: int, once: bool):
    """Evaluate the abandonment model against labelled sessions."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    # Route predictor events through the same handlers; stdout carries only results
    structlog.configure(
        processors=[structlog.processors.KeyValueRenderer(key_order=['event'])],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )

    from boltx.core.predictors.enhanced import EnhancedAbandonmentPredictor

    predictor = EnhancedAbandonmentPredictor()
    fetch = lambda limit: load_samples(data_path, limit)

    if once:
        predictor.load_training_data(fetch)
        metrics = predictor.get_metrics()
        if metrics is None:
            raise click.ClickException("No labelled samples found")
        click.echo(metrics.model_dump_json(indent=2))
        return

    scheduler = predictor.retrain_model(fetch, interval_seconds=interval)
    try:
        scheduler.wait()
    except KeyboardInterrupt:
        logger.info("Scheduler stopped by user")
    finally:
        scheduler.stop()


if __name__ == '__main__':
    main()
