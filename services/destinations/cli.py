"""
CLI for the destination pipeline.

Usage:
    python -m services.destinations.cli generate --count 50 --output out.json
    python -m services.destinations.cli generate --dry-run --skip-enrichment
    python -m services.destinations.cli enrich --count 20 --concurrency 5 --output out.json
    python -m services.destinations.cli upload --file out.json
    python -m services.destinations.cli configure --dry-run
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Mapping, Optional

from services.destinations.config import Settings
from services.destinations.pipeline.base_cities import generate_base_cities
from services.destinations.pipeline.city_assembler import CityAssembler, validate_assembled_city
from services.destinations.pipeline.enrichment import (
    BaseEnrichmentService,
    LLMEnrichmentService,
    StaticEnrichmentService,
)
from services.destinations.pipeline.index_client import AlgoliaIndexClient, UploadProgress
from services.destinations.pipeline.index_config import (
    DEFAULT_INDEX_SETTINGS,
    DEFAULT_SYNONYMS,
)
from services.destinations.pipeline.orchestrator import (
    PipelineOrchestrator,
    PipelineProgress,
    PipelineRunOptions,
    write_output_file,
)

logger = logging.getLogger(__name__)


def validate_env(env: Mapping[str, Optional[str]]) -> list[str]:
    """Names of required env vars missing from ``env``."""
    missing: list[str] = []
    if not env.get("ALGOLIA_APP_ID"):
        missing.append("ALGOLIA_APP_ID")
    if not env.get("ALGOLIA_ADMIN_KEY"):
        missing.append("ALGOLIA_ADMIN_KEY")
    if not env.get("ANTHROPIC_API_KEY"):
        missing.append("ANTHROPIC_API_KEY")
    return missing


def _log_progress(progress: PipelineProgress) -> None:
    logger.info("%3d%% [%s] %s", progress.progress, progress.stage.value, progress.message)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="destinations-pipeline",
        description="Generate, enrich and publish travel destination data",
    )
    parser.add_argument("--verbose", "-v", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Generate destinations and optionally upload them")
    gen.add_argument("--count", "-c", type=int, default=50, help="Number of cities")
    gen.add_argument("--output", "-o", help="Write assembled cities to this JSON file")
    gen.add_argument("--dry-run", action="store_true", help="Do not touch the search index")
    gen.add_argument("--skip-enrichment", action="store_true", help="Use fallback descriptions")

    enr = sub.add_parser("enrich", help="Enrich cities in parallel and write assembled records")
    enr.add_argument("--count", "-c", type=int, default=50, help="Number of cities")
    enr.add_argument("--output", "-o", required=True)
    enr.add_argument("--concurrency", type=int, help="Parallel LLM calls (default from settings)")
    enr.add_argument("--dry-run", action="store_true", help="Use canned enrichment, no LLM calls")

    up = sub.add_parser("upload", help="Upload a JSON file of assembled cities")
    up.add_argument("--file", "-f", required=True)
    up.add_argument("--index", "-i", help="Index name (default from ALGOLIA_INDEX_NAME)")
    up.add_argument("--dry-run", action="store_true", help="Validate without uploading")

    conf = sub.add_parser("configure", help="Apply index settings and synonyms")
    conf.add_argument("--index", "-i", help="Index name (default from ALGOLIA_INDEX_NAME)")
    conf.add_argument("--dry-run", action="store_true", help="Print settings without applying")

    return parser


async def _cmd_generate(args: argparse.Namespace, settings: Settings) -> int:
    if args.dry_run:
        pipeline = PipelineOrchestrator.create_for_testing()
    else:
        pipeline = PipelineOrchestrator.create(settings)

    async with pipeline:
        result = await pipeline.run(PipelineRunOptions(
            dry_run=args.dry_run,
            skip_enrichment=args.skip_enrichment,
            city_count=args.count,
            output_file=args.output,
            on_progress=_log_progress,
        ))

    if not result.success:
        logger.error("Pipeline failed: %s (stages=%s)", result.error,
                     {k: v.value for k, v in result.stages.items()})
        return 1

    logger.info(
        "Pipeline complete: %d cities in %dms%s",
        result.stats.processed_cities,
        result.stats.duration_ms,
        f", output saved to {result.output_file}" if result.output_file else "",
    )
    return 0


async def _cmd_enrich(args: argparse.Namespace, settings: Settings) -> int:
    """
    Batch enrichment: bounded-parallel LLM calls, then re-assembly from the
    collected results. A failing city aborts the command.
    """
    if args.count < 0:
        logger.error("--count must be >= 0, got %d", args.count)
        return 1
    cities = generate_base_cities()[: args.count]
    concurrency = args.concurrency or settings.enrichment_concurrency

    if args.dry_run:
        service: BaseEnrichmentService = StaticEnrichmentService()
    else:
        service = LLMEnrichmentService(
            api_key=settings.anthropic_api_key,
            model=settings.enrichment_model,
            max_tokens=settings.enrichment_max_tokens,
            temperature=settings.enrichment_temperature,
            max_retries=settings.enrichment_max_retries,
            retry_delay_s=settings.enrichment_retry_delay_s,
        )

    def _progress(done: int, total: int) -> None:
        logger.info("Enriched %d/%d cities", done, total)

    try:
        enrichments = await service.enrich_many(
            cities, concurrency=concurrency, on_progress=_progress,
        )
    finally:
        await service.aclose()

    assembler = CityAssembler(service)
    assembled = [
        assembler.assemble_with_enrichment(city, enrichment)
        for city, enrichment in zip(cities, enrichments)
    ]
    invalid = [c.city for c in assembled if not validate_assembled_city(c)]
    if invalid:
        logger.error("Invalid assembled cities: %s", ", ".join(invalid))
        return 1

    write_output_file(args.output, assembled)
    return 0


async def _cmd_upload(args: argparse.Namespace, settings: Settings) -> int:
    path = Path(args.file)
    with open(path, encoding="utf-8") as f:
        records = json.load(f)

    if not isinstance(records, list):
        logger.error("%s must contain a JSON array of records", path)
        return 1

    invalid = [
        r.get("objectID", "?") if isinstance(r, dict) else "?"
        for r in records
        if not validate_assembled_city(r)
    ]
    logger.info("Found %d records (%d invalid)", len(records), len(invalid))
    if invalid:
        logger.error("Invalid records: %s", ", ".join(map(str, invalid[:20])))
        return 1

    if args.dry_run:
        logger.info("Dry run complete - data is valid")
        return 0

    client = AlgoliaIndexClient(
        settings.algolia_app_id,
        settings.algolia_admin_key,
        args.index or settings.algolia_index_name,
        timeout_s=settings.index_http_timeout_s,
        poll_interval_s=settings.index_task_poll_interval_s,
        task_timeout_s=settings.index_task_timeout_s,
    )
    try:
        await client.configure_index(DEFAULT_INDEX_SETTINGS, DEFAULT_SYNONYMS)

        def _progress(p: UploadProgress) -> None:
            logger.info("Uploading: %d/%d", p.uploaded, p.total)

        result = await client.upload_records(
            records,
            batch_size=settings.upload_batch_size,
            wait_for_completion=True,
            on_progress=_progress,
        )
    finally:
        await client.aclose()

    if not result.success:
        logger.error(
            "Upload failed after %d records: %s", len(result.object_ids), result.error,
        )
        return 1

    logger.info("Uploaded %d records to %s", len(result.object_ids), client.index_name)
    return 0


async def _cmd_configure(args: argparse.Namespace, settings: Settings) -> int:
    index_name = args.index or settings.algolia_index_name
    if args.dry_run:
        print(json.dumps(
            {"index": index_name, "settings": DEFAULT_INDEX_SETTINGS, "synonyms": DEFAULT_SYNONYMS},
            indent=2,
        ))
        return 0

    client = AlgoliaIndexClient(
        settings.algolia_app_id,
        settings.algolia_admin_key,
        index_name,
        timeout_s=settings.index_http_timeout_s,
        poll_interval_s=settings.index_task_poll_interval_s,
        task_timeout_s=settings.index_task_timeout_s,
    )
    try:
        await client.configure_index(DEFAULT_INDEX_SETTINGS, DEFAULT_SYNONYMS)
    finally:
        await client.aclose()

    logger.info("Configured index %s", index_name)
    return 0


_COMMANDS = {
    "generate": _cmd_generate,
    "enrich": _cmd_enrich,
    "upload": _cmd_upload,
    "configure": _cmd_configure,
}


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if not args.dry_run:
        missing = validate_env({**os.environ, **_settings_env(settings)})
        # configure and upload only need the index credentials
        if args.command in ("configure", "upload"):
            missing = [m for m in missing if m != "ANTHROPIC_API_KEY"]
        elif args.command == "enrich":
            missing = [m for m in missing if m == "ANTHROPIC_API_KEY"]
        if missing:
            logger.error("Missing required environment variables: %s", ", ".join(missing))
            logger.error("Set these variables or use --dry-run")
            return 1

    try:
        return asyncio.run(_COMMANDS[args.command](args, settings))
    except Exception:
        logger.exception("%s failed", args.command)
        return 1


def _settings_env(settings: Settings) -> dict[str, str]:
    """Credentials as env-style keys (settings may come from .env, not os.environ)."""
    return {
        "ALGOLIA_APP_ID": settings.algolia_app_id,
        "ALGOLIA_ADMIN_KEY": settings.algolia_admin_key,
        "ANTHROPIC_API_KEY": settings.anthropic_api_key,
    }


if __name__ == "__main__":
    sys.exit(main())
