from mgnrega_pipeline.client.read_api import ReadApiClient

__all__ = ["ReadApiClient"]
