"""
Command-Line Interface for the News RAG service

Provides CLI commands for:
- Feed ingestion into the vector index
- Semantic search over indexed articles
- Grounded question answering with sources
- Interactive chat sessions
- System statistics
"""

import sys
import argparse
import logging

from .chat.handler import ChatHandler
from .chat.history import ChatHistoryStore
from .main_pipeline import NewsRAGSystem


def setup_logging(verbose: bool = False):
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def print_report(report):
    """Print an ingestion report."""
    print(f"\n{'='*60}")
    print("Ingestion Summary:")
    print(f"  Items fetched: {report.fetched}")
    print(f"  Articles indexed: {report.succeeded}")
    print(f"  Failed items: {report.failed_items}")
    print(f"  Failed sources: {len(report.failed_sources)}")
    print(f"  Processing time: {report.duration_s:.2f}s")
    print(f"{'='*60}")

    for failure in report.failed_sources:
        print(f"  - {failure['url']}: {failure['error']}")
    if report.upsert_error:
        print(f"  Upsert error: {report.upsert_error}")


def print_sources(sources):
    if not sources:
        return
    print("Sources:")
    for i, source in enumerate(sources, 1):
        print(f"  [{i}] {source.title} ({source.source_name})")
        print(f"      {source.link}")


def cmd_ingest(args):
    """Handle the ingest command."""
    system = NewsRAGSystem(show_progress=True)

    print(f"Ingesting {len(system.config.feed_sources)} feed source(s)")
    report = system.initialize()
    print_report(report)

    if report.succeeded == 0:
        sys.exit(1)


def cmd_search(args):
    """Handle the search command."""
    system = NewsRAGSystem(show_progress=True)

    if args.refresh:
        print_report(system.initialize())
    else:
        system.open_existing()

    print(f"Searching for: {args.query}")
    print()

    hits = system.rag_service.retrieve(args.query, top_k=args.top_k)

    if not hits:
        print("No results found.")
        return

    print(f"Found {len(hits)} results:\n")

    for i, hit in enumerate(hits, 1):
        print(f"[{i}] {hit.payload.get('title', 'Unknown')}")
        print(f"    Source: {hit.payload.get('source_name', '')}")
        print(f"    Link: {hit.payload.get('link', '')}")
        print(f"    Score: {hit.score:.3f}")
        print()


def _start_system(args) -> NewsRAGSystem:
    system = NewsRAGSystem(show_progress=True)
    if args.skip_ingest:
        system.open_existing()
    else:
        print_report(system.initialize())
    return system


def cmd_ask(args):
    """Handle the ask command."""
    system = _start_system(args)

    print(f"Question: {args.question}")
    print()

    answer = system.process_query(args.question, top_k=args.top_k)

    print("Answer:")
    print(answer.response_text)
    print()

    if not args.no_sources:
        print_sources(answer.sources)


def cmd_chat(args):
    """Handle the chat command."""
    system = _start_system(args)
    config = system.config
    handler = ChatHandler(
        system,
        ChatHistoryStore(
            history_limit=config.chat_history_limit,
            ttl_seconds=config.chat_ttl_seconds,
            storage_dir=config.chat_storage_dir or None
        )
    )

    session_id = args.session or handler.create_session()
    print(f"Session ID: {session_id}")
    print("Type a question, 'history' to show the session, or 'exit' to quit.\n")

    while True:
        try:
            message = input("> ").strip()
        except EOFError:
            break

        if not message:
            continue
        if message.lower() in ('exit', 'quit'):
            break
        if message.lower() == 'history':
            for entry in handler.get_history(session_id):
                print(f"  [{entry['timestamp']}] {entry['sender']}: {entry['message']}")
            continue

        result = handler.handle_message(session_id, message)
        if 'error' in result:
            print(f"✗ {result['error']}")
            continue

        bot_message = result['bot_message']
        print(bot_message['message'])
        for i, source in enumerate(bot_message['sources'], 1):
            print(f"  [{i}] {source['title']} - {source['link']}")
        print()


def cmd_stats(args):
    """Handle the stats command."""
    system = NewsRAGSystem()

    stats = system.get_stats()

    print("="*60)
    print("System Statistics")
    print("="*60)
    print(f"State: {stats['state']}")
    print(f"Feed Sources: {stats['sources']}")
    print(f"Embedding Provider: {stats['embedding_provider']}")
    print(f"Generation Provider: {stats['generation_provider']}")
    print()

    ingestion = stats['ingestion']
    print("Ingestion:")
    print(f"  Max Items per Source: {ingestion['feed_max_items']}")
    print(f"  Workers: {ingestion['ingest_max_workers']}")
    print(f"  Embedding Rate: {ingestion['embedding_rate_per_second']}/s")
    print()

    print("Vector Index:")
    index_stats = stats['index']
    print(f"  Collection: {index_stats['collection']}")
    print(f"  Dimension: {index_stats.get('dimension', 'N/A')}")
    print(f"  Metric: {index_stats.get('metric', 'N/A')}")
    print(f"  Articles: {index_stats['count']}")
    print("="*60)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description='News RAG - grounded answers from recent news feeds',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Fetch the configured feeds and index them
  newsrag ingest

  # Search the index
  newsrag search "interest rates" --top-k 3

  # Ask a question (ingests first)
  newsrag ask "What happened in tech today?"

  # Ask using the existing index only
  newsrag ask "What happened in tech today?" --skip-ingest

  # Interactive chat
  newsrag chat
        """
    )

    # Global arguments
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Ingest command
    ingest_parser = subparsers.add_parser(
        'ingest',
        help='Fetch the configured feeds and index their articles'
    )
    ingest_parser.set_defaults(func=cmd_ingest)

    # Search command
    search_parser = subparsers.add_parser(
        'search',
        help='Search for relevant articles'
    )
    search_parser.add_argument('query', help='Search query')
    search_parser.add_argument(
        '--top-k',
        type=int,
        default=None,
        help='Number of results to return'
    )
    search_parser.add_argument(
        '--refresh',
        action='store_true',
        help='Ingest the feeds before searching'
    )
    search_parser.set_defaults(func=cmd_search)

    # Ask command
    ask_parser = subparsers.add_parser(
        'ask',
        help='Ask a question and get a grounded answer'
    )
    ask_parser.add_argument('question', help='Question to ask')
    ask_parser.add_argument(
        '--top-k',
        type=int,
        default=None,
        help='Number of articles to use as context'
    )
    ask_parser.add_argument(
        '--skip-ingest',
        action='store_true',
        help='Answer from the existing index without fetching feeds'
    )
    ask_parser.add_argument(
        '--no-sources',
        action='store_true',
        help='Do not print source citations'
    )
    ask_parser.set_defaults(func=cmd_ask)

    # Chat command
    chat_parser = subparsers.add_parser(
        'chat',
        help='Start an interactive chat session'
    )
    chat_parser.add_argument('--session', help='Existing session ID to continue')
    chat_parser.add_argument(
        '--skip-ingest',
        action='store_true',
        help='Answer from the existing index without fetching feeds'
    )
    chat_parser.set_defaults(func=cmd_chat)

    # Stats command
    stats_parser = subparsers.add_parser(
        'stats',
        help='Display system statistics'
    )
    stats_parser.set_defaults(func=cmd_stats)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        print(f"\n✗ Error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
