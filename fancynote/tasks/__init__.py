"""Background tasks module."""

from fancynote.tasks.processing_tasks import EnrichmentPipeline, run_enrichment

__all__ = ["EnrichmentPipeline", "run_enrichment"]
