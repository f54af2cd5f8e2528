"""
Generation package for packetreplay.

This package turns packet dumps into a deduplicated packet catalog and an
ordered action script, and persists both as a replay artifact.
"""

from packetreplay.generator.config import (
    BEDROCK_CONFIG,
    GENERATION_PROFILES,
    MINIMAL_CONFIG,
    GenerationConfig,
    load_config,
)
from packetreplay.generator.pipeline import ScriptGenerator
from packetreplay.generator.artifact import ArtifactLoader, ArtifactWriter, ReplayArtifact
from packetreplay.generator.manager import GenerationManager

__all__ = [
    'BEDROCK_CONFIG',
    'GENERATION_PROFILES',
    'MINIMAL_CONFIG',
    'GenerationConfig',
    'load_config',
    'ScriptGenerator',
    'ArtifactLoader',
    'ArtifactWriter',
    'ReplayArtifact',
    'GenerationManager',
]
