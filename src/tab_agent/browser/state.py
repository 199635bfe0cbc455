"""Page state model and the never-failing state provider."""

import logging
from typing import List, Optional, Protocol
from urllib.parse import urlparse

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ElementBounds(BaseModel):
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0


class InteractiveElement(BaseModel):
    """One clickable or typeable element on the page."""
    index: int
    tag: str = ""
    text: str = ""
    attributes: dict[str, str] = Field(default_factory=dict)
    bounds: Optional[ElementBounds] = None

    def describe(self) -> str:
        label = self.text or self.attributes.get("placeholder") or self.attributes.get("aria-label") or ""
        return f"[{self.index}] <{self.tag}> {label[:80]}".rstrip()


class PageState(BaseModel):
    """Snapshot of the active tab."""
    url: str = ""
    title: str = ""
    domain: str = ""
    interactive_elements: List[InteractiveElement] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "PageState":
        return cls()

    @classmethod
    def from_url(cls, url: str, title: str = "", elements: Optional[List[InteractiveElement]] = None) -> "PageState":
        return cls(
            url=url,
            title=title,
            domain=urlparse(url).hostname or "",
            interactive_elements=elements or [],
        )

    def element_indices(self) -> set[int]:
        return {e.index for e in self.interactive_elements}

    def describe_elements(self, limit: Optional[int] = None) -> str:
        elements = self.interactive_elements if limit is None else self.interactive_elements[:limit]
        if not elements:
            return "(no interactive elements)"
        return "\n".join(e.describe() for e in elements)


class StateProvider(Protocol):
    """Anything that can report the current page state."""

    async def get_current_state(self) -> PageState: ...


class SafeStateProvider:
    """State provider over a page driver that degrades to an empty state.

    The execution loop relies on state capture never raising; a driver
    failure is logged and an empty ``PageState`` returned instead.
    """

    def __init__(self, driver):
        self.driver = driver

    async def get_current_state(self) -> PageState:
        if self.driver is None:
            return PageState.empty()
        try:
            state = await self.driver.get_state()
        except Exception as e:
            logger.warning(f"Page state capture failed, using empty state: {e}")
            return PageState.empty()

        if isinstance(state, PageState):
            if state.url and not state.domain:
                state = state.model_copy(update={"domain": urlparse(state.url).hostname or ""})
            return state
        try:
            return PageState.model_validate(state)
        except ValueError as e:
            logger.warning(f"Page driver returned malformed state, using empty state: {e}")
            return PageState.empty()
