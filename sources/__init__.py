"""Source adapters, keyed by the source_type stored on each Source."""

from sources.base import BaseSource
from sources.generic_board import GenericBoardSource
from sources.visa_board import VisaBoardSource

ADAPTERS: dict[str, type[BaseSource]] = {
    "generic_board": GenericBoardSource,
    "visa_board": VisaBoardSource,
    # Type names used by older source rows
    "indeed": GenericBoardSource,
    "myvisajobs": VisaBoardSource,
}


class UnsupportedSourceError(Exception):
    """No adapter is registered for a source type."""

    def __init__(self, source_type: str):
        super().__init__(f"No scraping implementation for source type: {source_type}")
        self.source_type = source_type


def get_adapter_class(source_type: str, registry: dict[str, type[BaseSource]] | None = None) -> type[BaseSource]:
    registry = ADAPTERS if registry is None else registry
    try:
        return registry[source_type]
    except KeyError:
        raise UnsupportedSourceError(source_type) from None
