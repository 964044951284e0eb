"""
SourcePrint Analyzer Module

Frame-ownership analysis of segments placed on their OCF timelines.
"""

from .frame_ownership import FrameOwnershipAnalyzer, display_color_for

__all__ = [
    'FrameOwnershipAnalyzer',
    'display_color_for',
]
