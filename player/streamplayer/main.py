import argparse
import asyncio
import json
import logging
import sys

from .api import StreamVerseClient
from .config import settings
from .errors import PlayerError
from .metrics import setup_metrics_server
from .retry import RetryConfig
from .session import StreamingSession
from .sink import FileSink
from .wallet import ExactEvmWallet

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="streamplayer", description="Stream a StreamVerse asset, paying per chunk")
    ap.add_argument("asset", help="CID of the asset")
    ap.add_argument("-o", "--out", required=True, help="file to append delivered chunks to")
    ap.add_argument("--start-index", type=int, default=0, help="resume from this chunk (count of chunks already delivered)")
    ap.add_argument("--api-url", default=str(settings.STREAMVERSE_API_URL))
    ap.add_argument("--info", action="store_true", help="print asset info and exit without paying")
    return ap


async def run(args: argparse.Namespace) -> int:
    async with StreamVerseClient(args.api_url, timeout=settings.STREAMVERSE_TIMEOUT) as client:
        if args.info:
            info = await client.get_info(args.asset)
            print(json.dumps(info.model_dump(by_alias=True), indent=2))
            return 0

        wallet = ExactEvmWallet(settings.PLAYER_PRIVATE_KEY or "")
        logger.info("paying from %s", wallet.address)
        sink = FileSink(args.out)
        session = StreamingSession(
            client,
            wallet,
            sink,
            args.asset,
            retry=RetryConfig(
                max_retries=settings.PLAYER_MAX_RETRIES,
                initial_backoff=settings.PLAYER_INITIAL_BACKOFF,
                max_backoff=settings.PLAYER_MAX_BACKOFF,
                backoff_multiplier=settings.PLAYER_BACKOFF_MULTIPLIER,
            ),
            start_index=args.start_index,
        )
        try:
            await session.play()
        except asyncio.CancelledError:
            await session.stop()
            raise
        finally:
            sink.close()
            print(json.dumps(session.snapshot(), indent=2))
        return 0 if session.completed else 1


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if settings.PROM_PORT:
        setup_metrics_server(settings.PROM_PORT)
    try:
        return asyncio.run(run(args))
    except PlayerError as e:
        logger.error("player error: %r", e)
        return 2
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
