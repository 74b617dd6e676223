# status: complete

from .search import BraveSearchClient, SearchResult
from .workflow import ResearchResult, ResearchWorkflow

__all__ = [
    "BraveSearchClient",
    "ResearchResult",
    "ResearchWorkflow",
    "SearchResult",
]
