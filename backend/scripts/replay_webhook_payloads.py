import asyncio
import json
import logging
import os
import sys

from dotenv import load_dotenv

# Add parent directory to path to allow imports from app
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

load_dotenv()

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)

from app.shared.db.session import AsyncSessionLocal, engine  # noqa: E402
from app.modules.whatsapp_inbox.services.ingestion_service import IngestionService  # noqa: E402
from app.shared.utils.exceptions import (  # noqa: E402
    TransientPersistenceError,
    UnrecognizedPayloadError,
)


# Replays saved WhatsApp Cloud API webhook bodies into the local database.
# Each file holds one payload, or a JSON list of payloads.
#
#   python scripts/replay_webhook_payloads.py samples/*.json


def load_payloads(path: str) -> list:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return data if isinstance(data, list) else [data]


async def replay(paths: list) -> int:
    failures = 0

    for path in paths:
        try:
            payloads = load_payloads(path)
        except (OSError, ValueError) as e:
            logger.error(f"❌ Could not read {path}: {e}")
            failures += 1
            continue

        logger.info(f"📨 Replaying {len(payloads)} payload(s) from {path}")

        for index, payload in enumerate(payloads):
            async with AsyncSessionLocal() as db:
                try:
                    result = await IngestionService(db).ingest(payload)
                    logger.info(f"✅ {path}[{index}]: {result.to_dict()}")
                except UnrecognizedPayloadError as e:
                    logger.warning(f"⚠️ {path}[{index}] skipped: {e}")
                except TransientPersistenceError as e:
                    logger.error(f"❌ {path}[{index}] partially failed: {e}")
                    failures += 1

    await engine.dispose()
    return failures


if __name__ == "__main__":
    if len(sys.argv) < 2:
        logger.error("Usage: python scripts/replay_webhook_payloads.py <payload.json> [...]")
        sys.exit(2)

    sys.exit(1 if asyncio.run(replay(sys.argv[1:])) else 0)
