# allocation_engine/config.py

from typing import Optional, TextIO
import logging
import sys

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv
from pythonjsonlogger.json import JsonFormatter

load_dotenv()

STRUCTURED_FIELDS = (
    "request_id",
    "run_status",
    "generation",
    "best_fitness",
    "violations",
    "attempt",
    "task_id",
    "resource_id",
    "count",
    "total",
    "reason",
    "elapsed_ms",
)


class CustomJsonFormatter(JsonFormatter):
    """JSON formatter that drops structured fields a log call did not set."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        for key in [k for k, v in log_record.items() if v is None]:
            del log_record[key]


def setup_json_logging(log_level: int = logging.INFO, stream: Optional[TextIO] = None) -> None:
    """Send the allocation_engine logger tree to stream (stdout by default) as one JSON object per line."""
    fmt = "%(asctime)s %(levelname)s %(name)s %(message)s " + " ".join(
        f"%({name})s" for name in STRUCTURED_FIELDS
    )
    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setFormatter(CustomJsonFormatter(fmt))

    engine_logger = logging.getLogger("allocation_engine")
    engine_logger.setLevel(log_level)
    # replace, never stack: create_app() and the CLI both call this
    engine_logger.handlers = [handler]
    engine_logger.propagate = False


def log_level_from_settings() -> int:
    return getattr(logging, str(settings.LOG_LEVEL).upper(), logging.INFO)


class Settings(BaseSettings):
    # App
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    API_SHARED_SECRET: str = ""

    # Database (ResultStore collaborator)
    DATABASE_URL: str = "sqlite:///./allocation_engine.db"

    # Optional JSON fixture (tasks + resources) backing the API's in-memory repositories
    FIXTURE_PATH: Optional[str] = None

    # Genetic optimizer defaults (overridable per request)
    GA_POPULATION_SIZE: int = 100
    GA_MAX_GENERATIONS: int = 200
    GA_TOURNAMENT_SIZE: int = 5
    GA_CROSSOVER_RATE: float = 0.8
    GA_MUTATION_RATE: float = 0.1
    GA_ELITISM_RATE: float = 0.1
    GA_CONVERGENCE_THRESHOLD: float = 0.001
    GA_CONVERGENCE_WINDOW: int = 10
    GA_MIN_FRACTION: float = 0.25
    GA_FITNESS_WORKERS: int = 4
    GA_RANDOM_SEED: Optional[int] = None

    # Cooperative deadline for one run
    OPTIMIZATION_TIMEOUT_SECONDS: float = 120.0

    # Registry key of the scoring strategy
    SCORING_MODEL: str = "weighted"

    # Collaborator retries (bounded exponential backoff)
    REPOSITORY_MAX_ATTEMPTS: int = 3
    RESULT_STORE_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY_SECONDS: float = 0.5
    RETRY_MAX_TOTAL_SECONDS: float = 10.0

    # Risk / bottleneck analysis
    BUDGET_WARNING_RATIO: float = 0.95
    OVERTIME_COST_MULTIPLIER: float = 1.5
    LOW_SUCCESS_PROBABILITY: float = 0.5

    # Scenario perturbations (fractions of the baseline)
    SCENARIO_COST_OPTIMIZED_COST_DELTA: float = -0.15
    SCENARIO_COST_OPTIMIZED_DURATION_DELTA: float = 0.10
    SCENARIO_TIME_OPTIMIZED_COST_DELTA: float = 0.12
    SCENARIO_TIME_OPTIMIZED_DURATION_DELTA: float = -0.20

    # Background executor for submitted runs
    ORCHESTRATOR_MAX_CONCURRENT_RUNS: int = Field(default=4, ge=1)
    # finished runs kept in memory: unpersisted results and failures (persisted ones are read from the store)
    ORCHESTRATOR_MAX_RETAINED_RUNS: int = Field(default=100, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_genetic_defaults(self) -> "Settings":
        """Reject rates outside [0, 1] early instead of at the first run."""
        for name in ("GA_CROSSOVER_RATE", "GA_MUTATION_RATE", "GA_ELITISM_RATE"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        if not 0.0 < self.GA_MIN_FRACTION <= 1.0:
            raise ValueError(f"GA_MIN_FRACTION must be within (0, 1], got {self.GA_MIN_FRACTION}")
        if self.GA_POPULATION_SIZE < 2:
            raise ValueError("GA_POPULATION_SIZE must be at least 2")
        return self


settings = Settings()
