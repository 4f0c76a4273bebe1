"""
mgnrega_shared — shared configuration, models, and store plumbing for mgnrega-sync.

Usage:
    from mgnrega_shared.config import settings
    from mgnrega_shared.db import SupabaseConnectionProvider
    from mgnrega_shared.models import District, Metric
    from mgnrega_shared.exceptions import NoDataError
"""

__version__ = "0.1.0"
