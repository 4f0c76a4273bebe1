"""
mgnrega_pipeline — data synchronization and cache-freshness workers for mgnrega-sync.

Architecture:
  sources/     — data.gov.in client and concurrent fetch of the four endpoints
  transforms/  — alias-tolerant normalization into District / Metric records
  loaders/     — repository contract (in-memory, Supabase) and the Reconciler
  pipelines/   — one full sync run, and the single-run-at-a-time scheduler
  reporting/   — cache status, freshness, and metrics export
  client/      — deduplicating, rate-limit-aware client for the read API
  utils/       — structlog configuration, tenacity retry decorator, TTL cache

Quick start:
    import asyncio
    from mgnrega_pipeline.loaders.repository import InMemoryRepository
    from mgnrega_pipeline.pipelines.data_sync import run
    from mgnrega_pipeline.sources.datagov import DataGovClient

    async def main():
        async with DataGovClient() as client:
            return await run(client=client, repository=InMemoryRepository())

    sync_run = asyncio.run(main())

CLI:
    mgnrega-sync sync --force
    mgnrega-sync freshness
    mgnrega-sync schedule
"""

__version__ = "0.1.0"
