import argparse
import asyncio
import json
import sys

from dotenv import load_dotenv
load_dotenv()

from confluence_rag.config import settings
from confluence_rag.core.errors import SyncError
from confluence_rag.db.session import init_db
from confluence_rag.wiring import build_components, configure_logging


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Index a Confluence space into the pgvector store.",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--once",
        action="store_true",
        help="Run a single sync cycle and exit (default).",
    )
    mode.add_argument(
        "--page",
        metavar="ID",
        help="Fetch and index one page by id.",
    )
    mode.add_argument(
        "--loop",
        action="store_true",
        help="Run the reconciler until interrupted.",
    )
    parser.add_argument(
        "--space",
        default=settings.confluence_space_key,
        help="Space key to sync (default: %(default)s).",
    )
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(settings.log_level)

    components = build_components(settings)
    components.reconciler.space_key = args.space

    try:
        await init_db(components.engine)

        if args.page:
            print(f"Indexing page {args.page}...")
            try:
                result = await components.indexer.process_and_index(args.page)
            except SyncError as exc:
                print(f"Failed: {exc.kind}: {exc}", file=sys.stderr)
                return 1
            print(f"Page {result.page_id} v{result.version}: {result.status} "
                  f"({result.sections_written} sections written)")
            return 0

        if args.loop:
            components.reconciler.start()
            try:
                await asyncio.Event().wait()
            finally:
                await components.reconciler.stop(timeout=settings.sync_stop_timeout)
            return 0

        print(f"Syncing space {args.space}...")
        report = await components.reconciler.run_cycle()
        print(json.dumps(report.to_dict(), indent=2))
        return 0 if report.ok else 1
    finally:
        await components.engine.dispose()


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)
