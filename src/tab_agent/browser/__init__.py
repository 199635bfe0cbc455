"""Page driver interface and page-state capture."""

from .driver import PageDriver, load_driver
from .state import InteractiveElement, PageState, SafeStateProvider, StateProvider

__all__ = [
    "PageDriver",
    "load_driver",
    "InteractiveElement",
    "PageState",
    "SafeStateProvider",
    "StateProvider",
]
