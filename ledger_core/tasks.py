import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task  # register this function as a Celery task
def recompute_cost_prices():
    """Re-derive moving-average cost prices for every stock balance."""
    # import lazily to avoid app-registry access at module import time
    from .services.stock import recompute_cost_prices as recompute

    changed = recompute()
    logger.info("Recomputed cost prices, %d balance(s) changed", changed)
    return changed
