"""
Stage orchestration for the content pipeline: prompt building, reply
normalization, dynamic planning and video placement.
"""

from .service import PipelineService

__all__ = ["PipelineService"]
