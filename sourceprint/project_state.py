# sourceprint/project_state.py
"""
Defines the data structures holding the complete state of a SourcePrint project,
including settings, analyzed media, linking and ownership results, and the
outcome of blank rush creation.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .models import BlankRushResult, EncoderSettings, LinkingResult, MediaFileInfo, ProcessingPlan

logger = logging.getLogger(__name__)


@dataclass
class ProjectSettings:
    """
    Stores all user-configurable settings for a SourcePrint project.

    Attributes:
        project_name: An optional name for the project.
        ocf_search_paths: Directories scanned for original camera files.
        segment_search_paths: Directories scanned for graded/VFX segments.
        blank_rush_directory: Where `<base>_blankRush.mov` files are written.
        analysis_max_workers: Upper bound on concurrent ffprobe calls.
        blank_rush_max_workers: Concurrent encode sessions (hardware encoders prefer 1).
        pause_between_files: Seconds to wait between blank rush encodes.
        encode_timeout: Seconds one encode session may run before it is abandoned.
        progress_interval: Minimum seconds between progress callbacks.
        encoder_settings: Codec, pixel format and colour tags for blank rushes.
        font_file: Optional font for the burned-in text.
    """
    project_name: Optional[str] = None
    ocf_search_paths: List[str] = field(default_factory=list)
    segment_search_paths: List[str] = field(default_factory=list)
    blank_rush_directory: Optional[str] = None
    analysis_max_workers: int = 16
    blank_rush_max_workers: int = 1
    pause_between_files: float = 0.0
    encode_timeout: int = 3600
    progress_interval: float = 0.1
    encoder_settings: EncoderSettings = field(default_factory=EncoderSettings)
    font_file: Optional[str] = None


@dataclass
class ProjectState:
    """
    Represents the entire state of a SourcePrint session.

    Attributes:
        settings: Project-specific configuration settings.
        ocf_files: Analyzed original camera files, in import order.
        segment_files: Analyzed graded/VFX segments, in import order.
        import_failures: (path, reason) for files ffprobe could not read.
        linking_result: Output of the last Segment->OCF linking run.
        processing_plans: Ownership plan per OCF path, for parents with children.
        blank_rush_results: Results of the last blank rush batch.
        is_dirty: Whether the state has changed since it was last marked clean.
    """
    settings: ProjectSettings = field(default_factory=ProjectSettings)
    ocf_files: List[MediaFileInfo] = field(default_factory=list)
    segment_files: List[MediaFileInfo] = field(default_factory=list)
    import_failures: List[Tuple[str, str]] = field(default_factory=list)
    linking_result: Optional[LinkingResult] = None
    processing_plans: Dict[str, ProcessingPlan] = field(default_factory=dict)
    blank_rush_results: List[BlankRushResult] = field(default_factory=list)
    is_dirty: bool = False

    def clear_analysis_results(self):
        """
        Resets everything derived from the imported media: linking, ownership
        plans and blank rush results. Imported files are kept.
        """
        logger.debug("Clearing analysis results (linking, processing plans, blank rushes).")
        self.linking_result = None
        self.processing_plans = {}
        self.blank_rush_results = []

    def clear_all(self):
        """Resets the entire project state to its default, empty condition."""
        logger.debug("Clearing entire ProjectState (settings, files, analysis results).")
        self.settings = ProjectSettings()
        self.ocf_files = []
        self.segment_files = []
        self.import_failures = []
        self.clear_analysis_results()
        self.is_dirty = False
