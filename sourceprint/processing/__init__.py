"""
SourcePrint Processing Module

Services that operate on a ProjectState: import, linking/ownership and blank rush creation.
"""

from .blank_rush_service import BlankRushService
from .import_service import ImportService
from .linking_service import LinkingService

__all__ = [
    'BlankRushService',
    'ImportService',
    'LinkingService',
]
