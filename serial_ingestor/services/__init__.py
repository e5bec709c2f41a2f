"""
Services layer for serial-ingestor service.
"""

from .pipeline_service import SerialPipelineService

__all__ = ["SerialPipelineService"]
