"""Decide whether an import is processed inline or queued."""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from mokuro_importer.core.importing.models import ImportDecision, PairedSource

logger = structlog.get_logger("mokuro_importer.importing.routing")


def decide_import_routing(pairings: Sequence[PairedSource]) -> ImportDecision:
    """Route the pairings of one import call.

    A single pairing is processed directly. Anything else (including nothing)
    goes to the queue in its original order.
    """
    if len(pairings) == 1:
        logger.debug("Import routed", pairings=1, direct=True)
        return ImportDecision(direct_process=pairings[0], queued=[])
    logger.debug("Import routed", pairings=len(pairings), direct=False)
    return ImportDecision(direct_process=None, queued=list(pairings))
