# sourceprint/processing/linking_service.py
"""
Service responsible for linking segments to their OCFs and building the
per-OCF frame-ownership plans from the result.
"""

import logging
from typing import Dict, Optional

from ..analyzer.frame_ownership import FrameOwnershipAnalyzer
from ..linker import SegmentOCFLinker
from ..models import LinkingResult, ProcessingPlan
from ..project_state import ProjectState

logger = logging.getLogger(__name__)


class LinkingService:
    """Runs the Segment->OCF linker and the ownership analyzer over the project state."""

    def __init__(self, state: ProjectState,
                 linker: Optional[SegmentOCFLinker] = None,
                 ownership_analyzer: Optional[FrameOwnershipAnalyzer] = None):
        if not isinstance(state, ProjectState):
            raise TypeError("LinkingService requires a valid ProjectState instance.")
        self.state = state
        self.linker = linker or SegmentOCFLinker()
        self.ownership_analyzer = ownership_analyzer or FrameOwnershipAnalyzer()
        logger.debug("LinkingService initialized.")

    def run_linking(self) -> LinkingResult:
        """
        Links every imported segment against every imported OCF and stores
        the result. Previous ownership plans and blank rush results are cleared.
        """
        logger.info("Starting segment linking...")
        self.state.clear_analysis_results()
        if not self.state.ocf_files:
            logger.warning("No OCF files imported; every segment will be unmatched.")
        if not self.state.segment_files:
            logger.warning("No segments imported; nothing to link.")

        result = self.linker.link(self.state.segment_files, self.state.ocf_files)
        self.state.linking_result = result

        if result.unmatched_segments:
            logger.warning(f"{len(result.unmatched_segments)} segment(s) could not be linked: "
                           f"{', '.join(s.file_name for s in result.unmatched_segments)}")
        logger.info(result.blank_rush_summary)
        return result

    def run_ownership_analysis(self) -> Dict[str, ProcessingPlan]:
        """
        Builds one ProcessingPlan per OCF that has children, keyed by OCF path.

        Raises:
            RuntimeError: If linking has not been run yet.
        """
        result = self.state.linking_result
        if result is None:
            raise RuntimeError("Linking must be run before ownership analysis.")

        logger.info(f"Starting ownership analysis for {len(result.parents_with_children)} OCF(s)...")
        plans: Dict[str, ProcessingPlan] = {}
        for parent in result.parents_with_children:
            try:
                plans[parent.ocf.path] = self.ownership_analyzer.analyze(parent)
            except Exception as e:
                logger.error(f"Ownership analysis failed for '{parent.ocf.file_name}': {e}", exc_info=True)

        self.state.processing_plans = plans
        conflicted = sum(1 for plan in plans.values() if plan.has_conflicts)
        log_msg = f"Ownership analysis complete: {len(plans)} plan(s), {conflicted} with conflicts"
        if conflicted:
            logger.warning(log_msg)
        else:
            logger.info(log_msg)
        return plans
