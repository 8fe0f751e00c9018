"""
Pipeline integration modules for the fusion system.
"""

from fusion_pipeline.fusion_pipeline import FusionPipeline
from fusion_pipeline.synchronizer import MessageSynchronizer
from fusion_pipeline.data_sources import DataSource, RecordingSource

__all__ = ['FusionPipeline', 'MessageSynchronizer', 'DataSource', 'RecordingSource']
