"""
Scheduled-event entrypoint for the StarRank trending crawler

Invoked by a scheduler (EventBridge, cron wrapper) with a small JSON event.
Running the module directly starts the in-process cadence loop instead.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from app.jobs.trending_sync import CrawlAlreadyRunningError, TrendingCrawlScheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Instantiate scheduler once per execution environment
scheduler = TrendingCrawlScheduler()


def lambda_handler(event: Optional[Dict[str, Any]], context: Any) -> Dict[str, Any]:
    """
    Dispatch one trending crawl request.

    Expected event payloads:
    - {"period": "daily" | "weekly" | "monthly", "language": "python", "limit": 25}
    - {"source": "trending_all"}
    - {"source": "analyze_repository", "owner": "...", "repo": "..."}

    Default is a daily crawl with the daily cadence limit.

    Returns:
        Dictionary with statusCode and result or error; 409 when another
        crawl is already running, 400 for malformed events
    """
    event = event or {}
    source = event.get("source", "trending")
    logger.info(f"Handler invoked with event: {event}")

    try:
        if source == "trending_all":
            result = asyncio.run(scheduler.run_all_periods())

        elif source == "analyze_repository":
            owner, repo = event.get("owner"), event.get("repo")
            if not owner or not repo:
                raise ValueError("analyze_repository requires 'owner' and 'repo'")
            result = asyncio.run(scheduler.analyze_repository(owner, repo, period=event.get("period")))

        elif source == "trending":
            limit = event.get("limit")
            run = asyncio.run(
                scheduler.trigger_run(
                    event.get("period", "daily"),
                    language=event.get("language"),
                    limit=int(limit) if limit is not None else None,
                )
            )
            result = run.to_dict()

        else:
            raise ValueError(f"Unknown source: {source}")

        logger.info(f"Crawl completed successfully for source: {source}")
        return {
            "statusCode": 200,
            "source": source,
            "result": result,
        }

    except CrawlAlreadyRunningError as e:
        logger.warning(f"Crawl rejected: {e}")
        return {
            "statusCode": 409,
            "source": source,
            "error": str(e),
        }

    except ValueError as e:
        logger.error(f"Invalid event: {e}")
        return {
            "statusCode": 400,
            "source": source,
            "error": str(e),
        }

    except Exception as e:
        logger.error(f"Crawl execution failed: {e}", exc_info=True)
        return {
            "statusCode": 500,
            "source": source,
            "error": str(e),
        }


# Long-running mode via `python -m app.handler`
if __name__ == "__main__":
    try:
        asyncio.run(scheduler.serve())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
