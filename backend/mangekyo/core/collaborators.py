"""Interfaces to collaborators outside the translation core."""

import logging
from typing import Any, Dict, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class Entitlement(Protocol):
    """Usage gate consulted before live translations.

    check_quota is asked before any engine call; record_usage is told about
    every completed live translation.
    """

    async def check_quota(self, action: str, params: Dict[str, Any]) -> bool:
        ...

    async def record_usage(self, action: str, details: Dict[str, Any]) -> None:
        ...


class AllowAllEntitlement:
    """Entitlement that never refuses and only logs usage."""

    async def check_quota(self, action: str, params: Dict[str, Any]) -> bool:
        return True

    async def record_usage(self, action: str, details: Dict[str, Any]) -> None:
        logger.debug(f"[Entitlement] {action}: {details}")
