from .about import SOURCEPRINT_VERSION
from .facade import SourcePrintFacade
from .models import LinkConfidence, LinkingResult, MediaFileInfo, MediaRole, ProcessingPlan

__version__ = SOURCEPRINT_VERSION

__all__ = ['SourcePrintFacade', 'MediaFileInfo', 'MediaRole', 'LinkConfidence', 'LinkingResult', 'ProcessingPlan']
