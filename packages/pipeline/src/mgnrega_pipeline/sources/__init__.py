"""
mgnrega_pipeline.sources — upstream data source adapters.

  DataGovClient — data.gov.in MGNREGA resources (districts, employment,
                  works, wages), one GET per call
  fetch_all     — concurrent settle-all fetch of every endpoint
"""

from mgnrega_pipeline.sources.datagov import DataGovClient, FetchResult, fetch_all

__all__ = ["DataGovClient", "FetchResult", "fetch_all"]
