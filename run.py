"""Development runner.
Usage: python run.py  (reads .env if present)
Set SEED_DEMO=1 to load demo currencies, countries, tax rates and products.
"""

from __future__ import annotations

import asyncio
import os

from dotenv import load_dotenv

from storefront import create_app
from storefront.demo_seed import seed_demo

load_dotenv()

app = create_app()

if os.getenv("SEED_DEMO", "0").lower() in ("1", "true", "yes"):
    asyncio.run(seed_demo(app.services))  # type: ignore[attr-defined]

if __name__ == "__main__":  # pragma: no cover
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "5000"))
    app.run(debug=True, host=host, port=port)
