"""Worker process serving arXiv feed operations over stdin/stdout.

Run with ``python -m curator.worker``. Requests arrive one JSON object per
line on stdin, responses are written one per line on stdout. All logging goes
to stderr so it never mixes with the protocol stream.
"""

import argparse
import logging
import sys
from typing import Callable, Dict, List, Optional

from . import __version__
from .fetcher import (
    DEFAULT_PAPERS_PER_CATEGORY,
    MAX_ABSTRACT_BATCH,
    MAX_PAPERS_PER_CATEGORY,
    ArxivFeedSource,
)
from .models import DEFAULT_CATEGORIES, FetchConfig
from .protocol import (
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    PROTOCOL_VERSION,
    decode,
    encode,
    make_error,
    make_result,
    text_content,
)

logger = logging.getLogger(__name__)

SERVER_NAME = "arxiv-curator-worker"

TOOLS = [
    {
        "name": "get_all_titles",
        "description": "Get all recent paper titles from the configured arXiv categories",
        "inputSchema": {
            "type": "object",
            "properties": {
                "papers_per_category": {
                    "type": "number",
                    "default": DEFAULT_PAPERS_PER_CATEGORY,
                    "maximum": MAX_PAPERS_PER_CATEGORY,
                    "description": "Number of recent papers to fetch per category",
                }
            },
        },
    },
    {
        "name": "get_abstracts_for_papers",
        "description": "Get full abstracts for specific papers",
        "inputSchema": {
            "type": "object",
            "properties": {
                "paper_urls": {
                    "type": "array",
                    "items": {"type": "string"},
                    "maxItems": MAX_ABSTRACT_BATCH,
                    "description": "arXiv URLs to fetch abstracts for",
                }
            },
            "required": ["paper_urls"],
        },
    },
]


class UnknownTool(LookupError):
    pass


class WorkerServer:
    """Dispatches request envelopes to the feed source."""

    def __init__(self, source: ArxivFeedSource):
        self.source = source
        self.initialized = False
        self._methods: Dict[str, Callable[[dict], dict]] = {
            "initialize": self._initialize,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
        }

    def handle_line(self, line: str) -> Optional[dict]:
        """
        Handle one request line.

        Returns:
            Response envelope, or None for notifications and unparseable lines
        """
        message = decode(line)
        if message is None:
            if line.strip():
                logger.warning("Ignoring malformed request line")
            return None

        method = message.get("method")
        request_id = message.get("id")
        if request_id is None:
            logger.debug(f"Notification received: {method}")
            return None

        handler = self._methods.get(method)
        if handler is None:
            return make_error(request_id, f"Method not found: {method}", METHOD_NOT_FOUND)

        try:
            return make_result(request_id, handler(message.get("params") or {}))
        except UnknownTool as e:
            return make_error(request_id, str(e), INVALID_PARAMS)
        except Exception as e:
            logger.error(f"Error in {method}: {e}", exc_info=True)
            return make_error(request_id, str(e))

    def _initialize(self, params: dict) -> dict:
        client = params.get("clientInfo") or {}
        logger.info(f"Handshake from {client.get('name', 'unknown client')}")
        self.initialized = True
        return {
            "protocolVersion": params.get("protocolVersion", PROTOCOL_VERSION),
            "capabilities": {"tools": {}},
            "serverInfo": {"name": SERVER_NAME, "version": __version__},
        }

    def _list_tools(self, params: dict) -> dict:
        return {"tools": TOOLS}

    def _call_tool(self, params: dict) -> dict:
        name = params.get("name")
        arguments = params.get("arguments") or {}

        if name == "get_all_titles":
            count = arguments.get("papers_per_category") or DEFAULT_PAPERS_PER_CATEGORY
            result = self.source.get_all_titles(papers_per_category=count)
        elif name == "get_abstracts_for_papers":
            result = self.source.get_abstracts_for_papers(arguments.get("paper_urls") or [])
        else:
            raise UnknownTool(f"Unknown tool: {name}")

        return text_content(result.to_dict())

    def serve(self, stdin=None, stdout=None) -> None:
        """Serve requests until stdin is closed."""
        stdin = stdin or sys.stdin
        stdout = stdout or sys.stdout.buffer

        logger.info("arXiv curator worker ready")
        for line in stdin:
            response = self.handle_line(line)
            if response is not None:
                stdout.write(encode(response))
                stdout.flush()
        logger.info("stdin closed, worker exiting")


# (flag, FetchConfig attribute, type) for the pacing and retry settings
FETCH_FLAGS = [
    ("--category-delay", "category_delay", float),
    ("--paper-delay", "paper_delay", float),
    ("--max-attempts", "max_attempts", int),
    ("--base-delay", "base_delay", float),
    ("--lookup-max-attempts", "lookup_max_attempts", int),
    ("--lookup-base-delay", "lookup_base_delay", float),
]


def worker_arguments(config: FetchConfig) -> List[str]:
    """Command-line arguments that reproduce ``config`` inside the worker."""
    args: List[str] = []
    for category in config.categories:
        args += ["--category", category]
    args += ["--base-url", config.base_url]
    for flag, attr, _ in FETCH_FLAGS:
        args += [flag, str(getattr(config, attr))]
    return args


def build_fetch_config(args: argparse.Namespace) -> FetchConfig:
    config = FetchConfig(categories=args.categories or list(DEFAULT_CATEGORIES))
    if args.base_url:
        config.base_url = args.base_url
    for _, attr, _ in FETCH_FLAGS:
        value = getattr(args, attr)
        if value is not None:
            setattr(config, attr, value)
    return config


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="arXiv curator feed worker")
    parser.add_argument(
        "--category",
        action="append",
        dest="categories",
        help="arXiv category to scan (repeatable)",
    )
    parser.add_argument("--base-url", default=None, help="arXiv API base URL")
    for flag, attr, kind in FETCH_FLAGS:
        parser.add_argument(flag, dest=attr, type=kind, default=None)
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    server = WorkerServer(ArxivFeedSource(build_fetch_config(args)))
    try:
        server.serve()
    except KeyboardInterrupt:
        logger.info("Shutting down worker...")
    return 0


if __name__ == "__main__":
    sys.exit(main())
