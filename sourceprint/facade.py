# sourceprint/facade.py
"""
Facade class providing a simplified interface to the SourcePrint core logic.
Owns the ProjectState and coordinates work between the processing services.
"""

import logging
import os
import threading
from typing import Dict, List, Optional

from .blank_rush import ProgressCallback
from .ffprobe_analyzer import FFProbeAnalyzer
from .models import BlankRushResult, EncoderSettings, LinkingResult, MediaFileInfo, MediaRole, ProcessingPlan
from .processing.blank_rush_service import BlankRushService
from .processing.import_service import ImportService
from .processing.linking_service import LinkingService
from .project_state import ProjectState
from .synthesis_backend import BlankRushError, PyAVSynthesisBackend

logger = logging.getLogger(__name__)


class SourcePrintFacade:
    """
    Main entry point for interacting with SourcePrint core logic.
    Delegates tasks to specialized services.
    """

    def __init__(self, analyzer: Optional[FFProbeAnalyzer] = None, backend_factory=PyAVSynthesisBackend):
        self.state = ProjectState()
        self._analyzer = analyzer
        self._backend_factory = backend_factory
        # Services will be instantiated lazily when needed
        self._import_service: Optional[ImportService] = None
        self._linking_service: Optional[LinkingService] = None
        self._blank_rush_service: Optional[BlankRushService] = None
        logger.info("SourcePrintFacade initialized")

    # --- Service Getters (Lazy Initialization) ---

    def _get_import_service(self) -> ImportService:
        if self._import_service is None:
            self._import_service = ImportService(self.state, self._analyzer)
        return self._import_service

    def _get_linking_service(self) -> LinkingService:
        if self._linking_service is None:
            self._linking_service = LinkingService(self.state)
        return self._linking_service

    def _get_blank_rush_service(self) -> BlankRushService:
        if self._blank_rush_service is None:
            self._blank_rush_service = BlankRushService(self.state, self._backend_factory)
        return self._blank_rush_service

    # --- Project State Access & Management ---

    def get_project_state_snapshot(self) -> ProjectState:
        """Provides access to the current state object (read-only recommended)."""
        return self.state

    def is_project_dirty(self) -> bool:
        return self.state.is_dirty

    def mark_project_dirty(self, dirty: bool = True):
        self.state.is_dirty = dirty

    def new_project(self):
        """Resets to a new, empty project."""
        logger.info("Creating new project")
        self.state.clear_all()
        self._import_service = None
        self._linking_service = None
        self._blank_rush_service = None

    # --- Configuration Methods ---

    def set_project_name(self, name: Optional[str]):
        name = name.strip() if name else None
        if self.state.settings.project_name != name:
            self.state.settings.project_name = name
            logger.info(f"Set project name: {name}")
            self.mark_project_dirty()

    def set_ocf_search_paths(self, paths: List[str]):
        """Sets the directories scanned for original camera files."""
        valid_paths = sorted([os.path.abspath(p) for p in paths if os.path.isdir(p)])
        if self.state.settings.ocf_search_paths != valid_paths:
            self.state.settings.ocf_search_paths = valid_paths
            logger.info(f"Set OCF search paths: {valid_paths}")
            self.mark_project_dirty()

    def set_segment_search_paths(self, paths: List[str]):
        """Sets the directories scanned for graded/VFX segments."""
        valid_paths = sorted([os.path.abspath(p) for p in paths if os.path.isdir(p)])
        if self.state.settings.segment_search_paths != valid_paths:
            self.state.settings.segment_search_paths = valid_paths
            logger.info(f"Set segment search paths: {valid_paths}")
            self.mark_project_dirty()

    def set_blank_rush_directory(self, directory: Optional[str]):
        """Sets the output directory for blank rushes. It is created when rushes are written."""
        new_dir = os.path.abspath(directory) if directory else None
        if self.state.settings.blank_rush_directory != new_dir:
            self.state.settings.blank_rush_directory = new_dir
            logger.info(f"Set blank rush directory: {new_dir}")
            self.mark_project_dirty()

    def set_encoder_settings(self, settings: EncoderSettings):
        if self.state.settings.encoder_settings != settings:
            self.state.settings.encoder_settings = settings
            logger.info(f"Set encoder settings: {settings.codec_name} / {settings.pixel_format} "
                        f"(profile {settings.profile})")
            self.mark_project_dirty()

    def set_font_file(self, font_file: Optional[str]):
        if font_file and not os.path.isfile(font_file):
            logger.warning(f"Ignoring non-existent font file: {font_file}")
            return
        if self.state.settings.font_file != font_file:
            self.state.settings.font_file = font_file
            logger.info(f"Set burn-in font: {font_file}")
            self.mark_project_dirty()

    def set_blank_rush_pacing(self, max_workers: int = 1, pause_between_files: float = 0.0,
                              encode_timeout: Optional[int] = None):
        """Sets encode concurrency, the pause between files and the per-session timeout."""
        settings = self.state.settings
        norm_workers = max(1, int(max_workers))
        norm_pause = max(0.0, float(pause_between_files))
        norm_timeout = settings.encode_timeout if encode_timeout is None else max(1, int(encode_timeout))
        if (settings.blank_rush_max_workers, settings.pause_between_files, settings.encode_timeout) != \
                (norm_workers, norm_pause, norm_timeout):
            settings.blank_rush_max_workers = norm_workers
            settings.pause_between_files = norm_pause
            settings.encode_timeout = norm_timeout
            logger.info(f"Set blank rush pacing: workers={norm_workers}, pause={norm_pause}s, "
                        f"timeout={norm_timeout}s")
            self.mark_project_dirty()

    def set_segment_vfx(self, segment_path: str, is_vfx: Optional[bool]) -> bool:
        """
        Overrides the VFX flag of an imported segment (None restores the
        file-name heuristic). Stale linking results are cleared.
        """
        abs_path = os.path.abspath(segment_path)
        for segment in self.state.segment_files:
            if segment.path == abs_path:
                if segment.is_vfx_shot != is_vfx:
                    segment.is_vfx_shot = is_vfx
                    self.state.clear_analysis_results()
                    logger.info(f"Set VFX flag for '{segment.file_name}': {is_vfx}")
                    self.mark_project_dirty()
                return True
        logger.warning(f"Segment not found in project: {abs_path}")
        return False

    # --- Import ---

    def import_ocf_files(self, paths: List[str]) -> bool:
        return self._run_import(lambda service: service.import_ocf_files(paths), "OCF import")

    def import_segments(self, paths: List[str]) -> bool:
        return self._run_import(lambda service: service.import_segments(paths), "segment import")

    def import_from_search_paths(self) -> bool:
        """Imports every media file under the configured OCF and segment search paths."""
        settings = self.state.settings
        if not settings.ocf_search_paths and not settings.segment_search_paths:
            logger.error("Cannot import: no OCF or segment search paths set.")
            return False
        ok = True
        for directory in settings.ocf_search_paths:
            ok = self._run_import(lambda s, d=directory: s.import_directory(d, MediaRole.ORIGINAL_CAMERA_FILE),
                                  f"OCF import from {directory}") and ok
        for directory in settings.segment_search_paths:
            ok = self._run_import(lambda s, d=directory: s.import_directory(d, MediaRole.GRADED_SEGMENT),
                                  f"segment import from {directory}") and ok
        return ok

    def _run_import(self, action, label: str) -> bool:
        logger.info(f"Running {label}")
        try:
            batch = action(self._get_import_service())
        except FileNotFoundError as e:
            logger.error(f"{label} failed, ffprobe is not available: {e}")
            return False
        except Exception as e:
            logger.error(f"{label} failed: {e}", exc_info=True)
            return False
        if batch.files:
            self.mark_project_dirty()
        return not batch.failures

    # --- Workflow Execution Methods ---

    def run_linking(self) -> bool:
        """Links segments to OCFs. Returns True on success, False on failure."""
        logger.info("Running linking")
        try:
            self._get_linking_service().run_linking()
            self.mark_project_dirty()
            return True
        except Exception as e:
            logger.error(f"Linking failed: {e}", exc_info=True)
            return False

    def run_ownership_analysis(self) -> bool:
        """Builds the frame-ownership plans. Requires a linking result."""
        logger.info("Running ownership analysis")
        try:
            self._get_linking_service().run_ownership_analysis()
            self.mark_project_dirty()
            return True
        except RuntimeError as e:
            logger.error(f"Ownership analysis not possible: {e}")
            return False
        except Exception as e:
            logger.error(f"Ownership analysis failed: {e}", exc_info=True)
            return False

    def create_blank_rushes(self, progress_callback: Optional[ProgressCallback] = None,
                            cancel_event: Optional[threading.Event] = None) -> bool:
        """
        Creates the blank rushes. Returns True only if every attempted file succeeded.
        """
        logger.info("Running blank rush creation")
        try:
            results = self._get_blank_rush_service().create_blank_rushes(progress_callback, cancel_event)
        except RuntimeError as e:
            logger.error(f"Blank rush creation not possible: {e}")
            return False
        except (BlankRushError, OSError) as e:
            logger.error(f"Blank rush creation failed: {e}", exc_info=True)
            return False
        return all(r.success for r in results if not r.skipped)

    # --- Result Getters ---

    def get_ocf_files(self) -> List[MediaFileInfo]:
        return self.state.ocf_files

    def get_segment_files(self) -> List[MediaFileInfo]:
        return self.state.segment_files

    def get_linking_result(self) -> Optional[LinkingResult]:
        return self.state.linking_result

    def get_processing_plans(self) -> Dict[str, ProcessingPlan]:
        return self.state.processing_plans

    def get_blank_rush_results(self) -> List[BlankRushResult]:
        return self.state.blank_rush_results

    def get_existing_blank_rushes(self) -> Dict[str, str]:
        """OCF file name -> path of each blank rush already in the output directory."""
        return self._get_blank_rush_service().scan_existing_blank_rushes()
