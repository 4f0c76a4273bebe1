"""
mgnrega_pipeline.loaders — store access and reconciliation.

  MetricsRepository   — async repository contract consumed by the Reconciler
                        and the reporters
  InMemoryRepository  — dict-backed store (tests, dry runs)
  SupabaseRepository  — PostgREST-backed store
  Reconciler          — record-level fault-isolated upserts
"""

from mgnrega_pipeline.loaders.reconciler import Reconciler, ReconcileResult
from mgnrega_pipeline.loaders.repository import InMemoryRepository, MetricsRepository
from mgnrega_pipeline.loaders.supabase_repository import SupabaseRepository

__all__ = [
    "MetricsRepository",
    "InMemoryRepository",
    "SupabaseRepository",
    "Reconciler",
    "ReconcileResult",
]
