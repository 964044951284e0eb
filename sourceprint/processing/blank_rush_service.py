# sourceprint/processing/blank_rush_service.py
"""
Service responsible for creating blank rushes for every linked OCF using
the project's encoder settings, and storing the per-file results.
"""

import logging
import threading
from typing import Dict, List, Optional

from ..blank_rush import (
    BackendFactory,
    BlankRushSynthesizer,
    ProgressCallback,
    create_blank_rushes,
    scan_for_existing_blank_rushes,
)
from ..models import BlankRushResult
from ..project_state import ProjectState
from ..synthesis_backend import PyAVSynthesisBackend

logger = logging.getLogger(__name__)


class BlankRushService:
    """Handles the blank rush creation workflow."""

    def __init__(self, state: ProjectState, backend_factory: BackendFactory = PyAVSynthesisBackend):
        """
        Initializes the service with the project state.

        Args:
            state: The ProjectState object containing linking results and settings.
            backend_factory: Creates one synthesis backend per encode session.
        """
        if not isinstance(state, ProjectState):
            raise TypeError("BlankRushService requires a valid ProjectState instance.")
        self.state = state
        self.backend_factory = backend_factory
        logger.debug("BlankRushService initialized.")

    def _build_synthesizer(self) -> BlankRushSynthesizer:
        settings = self.state.settings
        return BlankRushSynthesizer(
            backend_factory=self.backend_factory,
            encoder_settings=settings.encoder_settings,
            font_file=settings.font_file,
            progress_interval=settings.progress_interval,
            encode_timeout=settings.encode_timeout,
        )

    def create_blank_rushes(self,
                            progress_callback: Optional[ProgressCallback] = None,
                            cancel_event: Optional[threading.Event] = None) -> List[BlankRushResult]:
        """
        Creates a blank rush for each OCF with linked children.

        Raises:
            RuntimeError: If linking has not been run or no output directory is set.
        """
        result = self.state.linking_result
        if result is None:
            raise RuntimeError("Linking must be run before creating blank rushes.")
        output_directory = self.state.settings.blank_rush_directory
        if not output_directory:
            raise RuntimeError("Blank rush output directory is not set.")

        logger.info(f"Starting blank rush creation: {result.blank_rush_summary}")
        settings = self.state.settings
        results = create_blank_rushes(
            result,
            output_directory,
            synthesizer=self._build_synthesizer(),
            progress_callback=progress_callback,
            cancel_event=cancel_event,
            max_workers=settings.blank_rush_max_workers,
            pause_between_files=settings.pause_between_files,
        )
        self.state.blank_rush_results = results
        return results

    def scan_existing_blank_rushes(self) -> Dict[str, str]:
        """
        Looks for blank rushes left in the output directory by earlier runs.
        Returns an empty mapping until linking has run and a directory is set.
        """
        result = self.state.linking_result
        output_directory = self.state.settings.blank_rush_directory
        if result is None or not output_directory:
            logger.debug("Blank rush scan skipped: no linking result or output directory.")
            return {}
        return scan_for_existing_blank_rushes(result, output_directory)
