"""
AWS Lambda handler for the scheduled mail routing run.

Invoked by an EventBridge schedule. Thin orchestration layer that delegates
to IntakePipeline. Per-message failures are recorded in the processing log
and never fail the invocation.
"""

import logging
from typing import Dict, Any, Optional

from bootstrap import AppContext, build_context, configure_logging
from settings import load_settings

logger = logging.getLogger(__name__)

# Built on first invocation, reused while the container stays warm
_context: Optional[AppContext] = None


def get_context() -> AppContext:
    """Return this container's collaborators, building them on first use."""
    global _context
    if _context is None:
        settings = load_settings()
        configure_logging(settings.log_level)
        _context = build_context(settings)
    return _context


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Run one intake pass over the mailbox.

    Args:
        event: EventBridge scheduled event (contents unused)
        context: Lambda context

    Returns:
        Dict with the run summary, or an error description if the mailbox
        could not be listed
    """
    logger.info("=" * 70)
    logger.info("Mail Router - Started")
    logger.info("=" * 70)

    pipeline = get_context().pipeline

    try:
        summary = pipeline.run()
    except Exception as e:
        logger.error(f"Mail routing run failed: {e}", exc_info=True)
        return {'status': 'error', 'error': str(e)}

    if summary.locked:
        return {'status': 'skipped', 'reason': 'another run is in progress'}

    return {'status': 'ok', **summary.to_dict()}
