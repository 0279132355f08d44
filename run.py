import asyncio
import sys

import uvicorn
from servicechat.core.config import settings

# Windows: use SelectorEventLoop instead of ProactorEventLoop
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

if __name__ == "__main__":
    # Tables are created by the application lifespan
    uvicorn.run(
        "servicechat.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=False,
    )
