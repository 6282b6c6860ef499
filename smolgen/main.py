"""
Smolgen - Generation Worker
Wires the generation workflow to Redis, PostgreSQL, media storage and the
generation providers, and runs single generations from the command line
"""

import argparse
import asyncio
import logging
import sys
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, List, Optional

from .core.config import SmolgenSettings, get_settings
from .core.logging import setup_logging
from .database.artifact_store import RedisArtifactStore
from .database.connection import DatabaseManager, database_manager
from .database.repositories import SmolRecordStore
from .database.step_store import RedisStepStore
from .services.cache_purge import CachePurger
from .services.media_archive import LocalBlobStore, MediaArchiver
from .services.pixellab_provider import PixelLabProvider
from .services.song_provider import SongGeneratorProvider
from .services.workers_ai_provider import WorkersAIProvider
from .workflow.generation_workflow import GenerationWorkflow, WorkflowServices
from .workflow.types import GenerationResult, WorkflowPayload

# Global settings
settings = get_settings()

logger = logging.getLogger("smolgen")


def build_workflow(
    settings: SmolgenSettings,
    manager: DatabaseManager = database_manager,
) -> GenerationWorkflow:
    """Create a workflow backed by real collaborators; the manager must be initialized"""

    redis_client = manager.get_redis()

    services = WorkflowServices(
        images=PixelLabProvider(),
        vision=WorkersAIProvider(),
        songs=SongGeneratorProvider(),
        step_store=RedisStepStore(redis_client, settings.STEP_KEY_PREFIX),
        artifacts=RedisArtifactStore(redis_client, settings.ARTIFACT_KEY_PREFIX),
        records=SmolRecordStore(manager.get_session),
        archiver=MediaArchiver(LocalBlobStore(settings.MEDIA_PATH)),
        cache=CachePurger(settings.CF_API_TOKEN, settings.CF_ZONE_ID),
    )
    return GenerationWorkflow(services, settings=settings)


async def close_workflow(workflow: GenerationWorkflow) -> None:
    for provider in (workflow.services.images, workflow.services.vision, workflow.services.songs):
        await provider.close()


@asynccontextmanager
async def worker_lifespan(manager: DatabaseManager = database_manager) -> AsyncGenerator[DatabaseManager, None]:
    """Open and close database connections around a worker session"""

    logger.info("Starting smolgen worker...")

    try:
        await manager.initialize()
        if not await manager.check_health():
            raise RuntimeError("PostgreSQL or Redis is unreachable")
        logger.info("Database connections initialized")
    except Exception as e:
        logger.error(f"Failed to start smolgen worker: {e}")
        await manager.close()
        raise

    try:
        yield manager
    finally:
        logger.info("Shutting down smolgen worker...")
        await manager.close()
        logger.info("Database connections closed")


async def run_generation(
    payload: WorkflowPayload,
    run_id: Optional[str] = None,
    init_db: bool = False,
) -> GenerationResult:
    """Run one generation with a fresh run id"""

    run_id = run_id or uuid.uuid4().hex

    async with worker_lifespan() as manager:
        if init_db:
            await manager.create_tables()

        workflow = build_workflow(settings, manager)
        try:
            return await workflow.run(run_id, payload)
        finally:
            await close_workflow(workflow)


async def init_database() -> None:
    async with worker_lifespan() as manager:
        await manager.create_tables()
        logger.info("Database tables created")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="smolgen",
        description="Generate a pixel-art cover, lyrics and two songs from a prompt"
    )
    parser.add_argument("--address", help="Account address that owns the generation")
    parser.add_argument("--prompt", help="Text prompt to generate from")
    parser.add_argument("--retry-id", help="Run id of a previous run to resume from")
    parser.add_argument("--run-id", help="Explicit run id (defaults to a random id)")
    parser.add_argument("--playlist", help="Playlist title to add the result to")
    parser.add_argument("--private", action="store_true", help="Store the result as private")
    parser.add_argument("--instrumental", action="store_true", help="Generate instrumental songs")
    parser.add_argument("--init-db", action="store_true", help="Create database tables first")

    args = parser.parse_args(argv)

    if not args.retry_id and not (args.address and args.prompt) and not args.init_db:
        parser.error("--address and --prompt are required unless --retry-id or --init-db is given")

    return args


def payload_from_args(args: argparse.Namespace) -> WorkflowPayload:
    """Only flags that were given become explicit payload fields"""

    fields = {
        "address": args.address,
        "prompt": args.prompt,
        "retry_id": args.retry_id,
        "playlist": args.playlist,
    }
    if args.private:
        fields["public"] = False
    if args.instrumental:
        fields["instrumental"] = True

    return WorkflowPayload(**{key: value for key, value in fields.items() if value is not None})


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging()

    if args.init_db and not (args.retry_id or args.prompt):
        asyncio.run(init_database())
        return 0

    try:
        result = asyncio.run(
            run_generation(payload_from_args(args), run_id=args.run_id, init_db=args.init_db)
        )
    except Exception as e:
        logger.error(f"Generation failed: {e}")
        return 1

    print(result.model_dump_json(include={"payload", "description", "lyrics", "song_ids", "songs"}, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
