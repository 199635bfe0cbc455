"""Page driver interface and deployment-supplied driver loading."""

import importlib
import logging
from typing import Any, Optional, Protocol, runtime_checkable

from .state import PageState
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


@runtime_checkable
class PageDriver(Protocol):
    """Primitive operations on the active tab.

    Supplied by the deployment (a browser-extension bridge, a Playwright
    page, a test double). Actions call these; the orchestrator never
    touches the browser any other way.
    """

    async def get_state(self) -> PageState: ...

    async def navigate(self, url: str) -> None: ...

    async def click(self, index: int) -> None: ...

    async def type_text(self, index: int, text: str) -> None: ...

    async def scroll(self, direction: str, amount: int) -> None: ...


def load_driver(factory_path: Optional[str], **kwargs: Any) -> Optional[PageDriver]:
    """
    Build a page driver from a ``"package.module:callable"`` import string.

    Returns None when no factory is configured; the orchestrator still
    serves connections but driver-backed actions fail until one is set.

    Raises:
        ConfigurationError: The module or callable cannot be loaded, or the
            result does not implement ``PageDriver``
    """
    if not factory_path:
        logger.warning("No browser.driver_factory configured; driver-backed actions will fail")
        return None

    module_name, _, attr = factory_path.partition(":")
    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot load driver factory '{factory_path}': {e}") from e

    driver = factory(**kwargs)
    if not isinstance(driver, PageDriver):
        raise ConfigurationError(
            f"Driver factory '{factory_path}' returned {type(driver).__name__}, "
            "which does not implement PageDriver"
        )
    logger.info(f"Loaded page driver {type(driver).__name__} from {factory_path}")
    return driver
