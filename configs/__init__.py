from .pipeline_config import ConfigPresets, PipelineConfig

__all__ = ["ConfigPresets", "PipelineConfig"]
