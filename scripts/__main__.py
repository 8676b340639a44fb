"""Run the demo seed when the scripts package is executed directly."""

import asyncio

from scripts.seed import _run_seed

asyncio.run(_run_seed())
