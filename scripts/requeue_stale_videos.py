"""Run one stale-video sweep outside of Celery beat.

Usage:
    python -m scripts.requeue_stale_videos
"""

import asyncio

from app.core.logging import setup_logging
from app.modules.video.tasks import _requeue_stale_videos


async def main() -> None:
    result = await _requeue_stale_videos()
    print(f"Requeued {len(result['requeued'])} video(s)")
    for video_id in result["requeued"]:
        print(f"  {video_id}")


if __name__ == "__main__":
    setup_logging(json_format=False)
    asyncio.run(main())
