# sourceprint/processing/import_service.py
"""
Service responsible for bringing media into the project: probing OCFs and
segments with ffprobe and storing the resulting MediaFileInfo objects in
the ProjectState.
"""

import logging
import os
from typing import List, Optional, Sequence

from ..ffprobe_analyzer import BatchAnalysisResult, FFProbeAnalyzer, discover_media_files
from ..models import MediaFileInfo, MediaRole
from ..project_state import ProjectState

logger = logging.getLogger(__name__)


class ImportService:
    """Analyzes media files and adds them to the project state."""

    def __init__(self, state: ProjectState, analyzer: Optional[FFProbeAnalyzer] = None):
        """
        Initializes the service with the project state.

        Args:
            state: The ProjectState object to update.
            analyzer: Metadata extractor to use. Created on first import if None,
                      so a missing ffprobe only matters once something is imported.
        """
        if not isinstance(state, ProjectState):
            raise TypeError("ImportService requires a valid ProjectState instance.")
        self.state = state
        self._analyzer = analyzer
        logger.debug("ImportService initialized.")

    def _get_analyzer(self) -> FFProbeAnalyzer:
        if self._analyzer is None:
            self._analyzer = FFProbeAnalyzer()
        return self._analyzer

    def import_ocf_files(self, paths: Sequence[str]) -> BatchAnalysisResult:
        """Analyzes original camera files and adds them to `state.ocf_files`."""
        return self._import(paths, MediaRole.ORIGINAL_CAMERA_FILE)

    def import_segments(self, paths: Sequence[str]) -> BatchAnalysisResult:
        """Analyzes graded/VFX segments and adds them to `state.segment_files`."""
        return self._import(paths, MediaRole.GRADED_SEGMENT)

    def import_directory(self, directory: str, role: MediaRole) -> BatchAnalysisResult:
        """Recursively imports every media file under `directory` with the given role."""
        logger.info(f"Importing {role.value} files from directory: {directory}")
        return self._import(discover_media_files(directory), role)

    def _import(self, paths: Sequence[str], role: MediaRole) -> BatchAnalysisResult:
        abs_paths = [os.path.abspath(p) for p in paths]
        if not abs_paths:
            logger.warning(f"No {role.value} files to import.")
            return BatchAnalysisResult()

        batch = self._get_analyzer().analyze_batch(
            abs_paths, role, max_workers=self.state.settings.analysis_max_workers)

        target = self._target_list(role)
        added, replaced = self._merge(target, batch.files)
        self.state.import_failures.extend(batch.failures)

        # Inputs changed, derived results are stale
        if added or replaced:
            self.state.clear_analysis_results()

        logger.info(f"Imported {added} new and {replaced} re-analyzed {role.value} file(s); "
                    f"{len(batch.failures)} failure(s). Total {role.value} files: {len(target)}")
        return batch

    def _target_list(self, role: MediaRole) -> List[MediaFileInfo]:
        if role is MediaRole.ORIGINAL_CAMERA_FILE:
            return self.state.ocf_files
        return self.state.segment_files

    @staticmethod
    def _merge(target: List[MediaFileInfo], new_files: List[MediaFileInfo]):
        """Appends new files; a path imported again replaces the earlier analysis in place."""
        index_by_path = {info.path: i for i, info in enumerate(target)}
        added = replaced = 0
        for info in new_files:
            existing = index_by_path.get(info.path)
            if existing is None:
                index_by_path[info.path] = len(target)
                target.append(info)
                added += 1
            else:
                # Keep a user's VFX override across re-analysis
                if target[existing].is_vfx_shot is not None and info.is_vfx_shot is None:
                    info.is_vfx_shot = target[existing].is_vfx_shot
                target[existing] = info
                replaced += 1
        return added, replaced
