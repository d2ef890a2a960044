from tests.test_utils.factories.fetch import FetchResultFactory, not_modified
from tests.test_utils.factories.storage import HistoryEntryFactory, ResourceFactory

__all__ = [
    "FetchResultFactory",
    "HistoryEntryFactory",
    "ResourceFactory",
    "not_modified",
]
