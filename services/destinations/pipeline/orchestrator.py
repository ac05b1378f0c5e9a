"""
End-to-end destination pipeline orchestrator.

Builds the destination catalog, enriches and assembles every city, and
publishes the corpus to the search index.

Pipeline stages (in order):
  1. initialization   -- configure index settings + synonyms (skipped work on dry run)
  2. data-generation  -- base catalog, optionally truncated to city_count
  3. enrichment       -- LLM description + vibe tags (skipped with skip_enrichment)
  4. assembly         -- scores, image, validation; runs in the same loop as 3
  5. upload           -- batched upsert + task wait (skipped on dry run)

Stage state machine: pending -> in_progress -> completed | failed | skipped.

Failure semantics:
  - Any exception aborts the run. The stage(s) in progress are marked
    failed, earlier stages keep ``completed``, later ones stay ``pending``,
    and the message becomes PipelineResult.error.
  - A single city's assembly failure aborts the run (fail-fast; no
    per-city skip).
  - Enrichment failures never reach here: the assembler falls back.
  - An UploadResult(success=False) is raised as the run's terminal error.

If ``output_file`` is set, the assembled corpus is written as pretty JSON
before the upload stage, dry run included.

Usage:
    async with PipelineOrchestrator.create(settings) as pipeline:
        result = await pipeline.run(PipelineRunOptions(city_count=10))
"""

import json
import logging
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from services.destinations.config import Settings
from services.destinations.pipeline.base_cities import generate_base_cities
from services.destinations.pipeline.city_assembler import AssembledCity, CityAssembler
from services.destinations.pipeline.enrichment import (
    BaseEnrichmentService,
    LLMEnrichmentService,
    StaticEnrichmentService,
)
from services.destinations.pipeline.image_resolver import ImageResolver
from services.destinations.pipeline.index_client import (
    DEFAULT_BATCH_SIZE,
    AlgoliaIndexClient,
    BaseIndexClient,
    InMemoryIndexClient,
    UploadProgress,
)
from services.destinations.pipeline.index_config import (
    DEFAULT_INDEX_SETTINGS,
    DEFAULT_SYNONYMS,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Stage state
# ---------------------------------------------------------------------------

class StageStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class PipelineStage(str, Enum):
    INITIALIZATION = "initialization"
    DATA_GENERATION = "data-generation"
    ENRICHMENT = "enrichment"
    ASSEMBLY = "assembly"
    UPLOAD = "upload"
    COMPLETE = "complete"  # progress-only marker, never a stage in result.stages


# Ordered list of stages -- execution follows this sequence
STAGE_ORDER: list[PipelineStage] = [
    PipelineStage.INITIALIZATION,
    PipelineStage.DATA_GENERATION,
    PipelineStage.ENRICHMENT,
    PipelineStage.ASSEMBLY,
    PipelineStage.UPLOAD,
]


@dataclass
class PipelineProgress:
    stage: PipelineStage
    message: str
    progress: int  # 0-100
    total: Optional[int] = None


ProgressCallback = Callable[[PipelineProgress], None]


@dataclass
class PipelineRunOptions:
    dry_run: bool = False
    skip_enrichment: bool = False
    city_count: Optional[int] = None
    output_file: Optional[str] = None
    on_progress: Optional[ProgressCallback] = None


@dataclass
class PipelineStats:
    total_cities: int = 0
    processed_cities: int = 0
    duration_ms: int = 0


@dataclass
class PipelineResult:
    """Outcome of one run. Created fresh per run, returned once."""
    success: bool = False
    error: Optional[str] = None
    stages: dict[str, StageStatus] = field(default_factory=dict)
    cities: list[AssembledCity] = field(default_factory=list)
    output_file: Optional[str] = None
    stats: PipelineStats = field(default_factory=PipelineStats)

    def __post_init__(self):
        for stage in STAGE_ORDER:
            self.stages.setdefault(stage.value, StageStatus.PENDING)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "stages": {name: status.value for name, status in self.stages.items()},
            "cities": [c.to_record() for c in self.cities],
            "output_file": self.output_file,
            "stats": asdict(self.stats),
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _emit(
    callback: Optional[ProgressCallback],
    stage: PipelineStage,
    message: str,
    progress: int,
    total: Optional[int] = None,
) -> None:
    if callback is not None:
        callback(PipelineProgress(stage=stage, message=message, progress=progress, total=total))


def _set(result: PipelineResult, stage: PipelineStage, status: StageStatus) -> None:
    result.stages[stage.value] = status


def write_output_file(path: str, cities: list[AssembledCity]) -> None:
    """Pretty-printed JSON array of assembled records."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with open(out, "w", encoding="utf-8") as f:
        json.dump([c.to_record() for c in cities], f, indent=2, ensure_ascii=False)
    logger.info("Wrote %d cities to %s", len(cities), out)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class PipelineOrchestrator:
    """Drives the five stages. Collaborators are injected at construction."""

    def __init__(
        self,
        enrichment_service: BaseEnrichmentService,
        index_client: BaseIndexClient,
        *,
        image_resolver: Optional[ImageResolver] = None,
        upload_batch_size: int = DEFAULT_BATCH_SIZE,
        index_settings: Optional[dict[str, Any]] = None,
        synonyms: Optional[list[dict[str, Any]]] = None,
    ):
        self.enrichment_service = enrichment_service
        self.index_client = index_client
        self.image_resolver = image_resolver or ImageResolver()
        self.assembler = CityAssembler(enrichment_service, self.image_resolver)
        self.upload_batch_size = upload_batch_size
        self.index_settings = index_settings if index_settings is not None else DEFAULT_INDEX_SETTINGS
        self.synonyms = synonyms if synonyms is not None else DEFAULT_SYNONYMS

    # -- factories ----------------------------------------------------------

    @classmethod
    def create(cls, settings: Settings) -> "PipelineOrchestrator":
        """Live collaborators from configuration."""
        enrichment = LLMEnrichmentService(
            api_key=settings.anthropic_api_key or None,
            model=settings.enrichment_model,
            max_tokens=settings.enrichment_max_tokens,
            temperature=settings.enrichment_temperature,
            max_retries=settings.enrichment_max_retries,
            retry_delay_s=settings.enrichment_retry_delay_s,
        )
        index = AlgoliaIndexClient(
            settings.algolia_app_id,
            settings.algolia_admin_key,
            settings.algolia_index_name,
            timeout_s=settings.index_http_timeout_s,
            poll_interval_s=settings.index_task_poll_interval_s,
            task_timeout_s=settings.index_task_timeout_s,
        )
        return cls(enrichment, index, upload_batch_size=settings.upload_batch_size)

    @classmethod
    def create_for_testing(cls) -> "PipelineOrchestrator":
        """No-network collaborators: static enrichment + in-memory index."""
        return cls(StaticEnrichmentService(), InMemoryIndexClient())

    async def aclose(self) -> None:
        await self.enrichment_service.aclose()
        await self.index_client.aclose()

    async def __aenter__(self) -> "PipelineOrchestrator":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    # -- run ----------------------------------------------------------------

    async def run(self, options: Optional[PipelineRunOptions] = None) -> PipelineResult:
        """Execute one pipeline run. Never raises; see PipelineResult.error."""
        options = options or PipelineRunOptions()
        on_progress = options.on_progress
        t0 = time.monotonic()
        result = PipelineResult()

        logger.info(
            "=== Destination pipeline: dry_run=%s skip_enrichment=%s city_count=%s ===",
            options.dry_run, options.skip_enrichment, options.city_count,
        )

        try:
            # --- Stage 1: Initialization ---
            logger.info("[1/5] Initialization")
            _emit(on_progress, PipelineStage.INITIALIZATION, "Initializing pipeline...", 0)
            _set(result, PipelineStage.INITIALIZATION, StageStatus.IN_PROGRESS)
            if not options.dry_run:
                await self.index_client.configure_settings(self.index_settings)
                await self.index_client.configure_synonyms(self.synonyms)
            _set(result, PipelineStage.INITIALIZATION, StageStatus.COMPLETED)

            # --- Stage 2: Data generation ---
            logger.info("[2/5] Generating base cities")
            _emit(on_progress, PipelineStage.DATA_GENERATION, "Generating base city data...", 0)
            _set(result, PipelineStage.DATA_GENERATION, StageStatus.IN_PROGRESS)

            if options.city_count is not None and options.city_count < 0:
                raise ValueError(f"city_count must be >= 0, got {options.city_count}")
            base_cities = generate_base_cities()
            if options.city_count and options.city_count < len(base_cities):
                base_cities = base_cities[: options.city_count]

            total = len(base_cities)
            result.stats.total_cities = total
            _set(result, PipelineStage.DATA_GENERATION, StageStatus.COMPLETED)
            _emit(
                on_progress, PipelineStage.DATA_GENERATION,
                f"Generated {total} cities", 100, total,
            )

            # --- Stages 3+4: Enrichment + assembly ---
            logger.info(
                "[3-4/5] %s %d cities",
                "Assembling" if options.skip_enrichment else "Enriching and assembling",
                total,
            )
            _set(
                result, PipelineStage.ENRICHMENT,
                StageStatus.SKIPPED if options.skip_enrichment else StageStatus.IN_PROGRESS,
            )
            _set(result, PipelineStage.ASSEMBLY, StageStatus.IN_PROGRESS)
            loop_stage = (
                PipelineStage.ASSEMBLY if options.skip_enrichment else PipelineStage.ENRICHMENT
            )

            assembled: list[AssembledCity] = []
            for i, base in enumerate(base_cities, 1):
                _emit(
                    on_progress, loop_stage,
                    f"Processing {base.city} ({i}/{total})",
                    round(i / total * 100), total,
                )
                city = await self.assembler.assemble(
                    base, skip_enrichment=options.skip_enrichment,
                )
                assembled.append(city)
                result.stats.processed_cities = i

            if not options.skip_enrichment:
                _set(result, PipelineStage.ENRICHMENT, StageStatus.COMPLETED)
            _set(result, PipelineStage.ASSEMBLY, StageStatus.COMPLETED)
            result.cities = assembled

            if options.output_file:
                write_output_file(options.output_file, assembled)
                result.output_file = options.output_file

            # --- Stage 5: Upload ---
            if options.dry_run:
                logger.info("[5/5] Dry run, skipping upload")
                _set(result, PipelineStage.UPLOAD, StageStatus.SKIPPED)
                _emit(on_progress, PipelineStage.COMPLETE, "Dry run complete - no data uploaded", 100)
            else:
                logger.info("[5/5] Uploading %d records to %s", total, self.index_client.index_name)
                _set(result, PipelineStage.UPLOAD, StageStatus.IN_PROGRESS)
                _emit(on_progress, PipelineStage.UPLOAD, "Uploading to search index...", 0)

                def _forward(p: UploadProgress) -> None:
                    _emit(
                        on_progress, PipelineStage.UPLOAD,
                        f"Uploaded {p.uploaded}/{p.total} records",
                        round(p.uploaded / p.total * 100) if p.total else 100,
                        p.total,
                    )

                upload = await self.index_client.upload_records(
                    [c.to_record() for c in assembled],
                    batch_size=self.upload_batch_size,
                    wait_for_completion=True,
                    on_progress=_forward,
                )
                if not upload.success:
                    raise RuntimeError(upload.error or "Upload failed")

                _set(result, PipelineStage.UPLOAD, StageStatus.COMPLETED)
                _emit(
                    on_progress, PipelineStage.COMPLETE,
                    f"Successfully uploaded {len(assembled)} cities", 100,
                )

            result.success = True

        except Exception as exc:
            result.success = False
            result.error = str(exc) or type(exc).__name__
            for name, status in result.stages.items():
                if status == StageStatus.IN_PROGRESS:
                    result.stages[name] = StageStatus.FAILED
            logger.exception("Destination pipeline failed: %s", result.error)

        result.stats.duration_ms = int((time.monotonic() - t0) * 1000)

        logger.info(
            "=== Destination pipeline %s | cities=%d/%d | %dms ===",
            "SUCCESS" if result.success else "FAILED",
            result.stats.processed_cities,
            result.stats.total_cities,
            result.stats.duration_ms,
        )
        return result
