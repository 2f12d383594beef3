#!/usr/bin/env python3
"""Interactive tutor chat CLI."""

import argparse
import asyncio
import logging
import sys
from config.settings import Settings
from config.feature_flags import FeatureFlagConfig, StaticFeatureGate
from llm.factory import create_llm_client
from memory.profile_store import SQLiteProfileStore
from orchestrator import TutorMiddleware

FLAG_PRESETS = {
    "development": FeatureFlagConfig.development,
    "staging": FeatureFlagConfig.staging,
    "production": FeatureFlagConfig.production,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Tutor chat with conversation memory and response validation"
    )
    parser.add_argument(
        "--provider",
        type=str,
        choices=["openai", "anthropic"],
        help="LLM provider (default: TUTOR_LLM_PROVIDER or openai)"
    )
    parser.add_argument(
        "--model",
        type=str,
        help="Model override for the provider"
    )
    parser.add_argument(
        "--user",
        "-u",
        type=str,
        default="local-user",
        help="User id for feature gating and profile storage (default: local-user)"
    )
    parser.add_argument(
        "--flags",
        type=str,
        choices=sorted(FLAG_PRESETS),
        default="development",
        help="Feature flag preset (default: development)"
    )
    parser.add_argument(
        "--profile-db",
        type=str,
        help="Store learning style profiles in this SQLite file (opt-in)"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )
    return parser


async def chat(middleware: TutorMiddleware, generator, user_id: str, verbose: bool):
    """Read-eval-print loop over stdin."""
    print("Tutor ready. Commands: /stats, /clear, /quit\n")

    while True:
        try:
            message = input("You: ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break

        if not message:
            continue
        if message == "/quit":
            break
        if message == "/clear":
            middleware.clear(user_id)
            print("Conversation memory cleared.\n")
            continue
        if message == "/stats":
            stats = middleware.session_stats(user_id) or {}
            for key, value in stats.items():
                print(f"  {key}: {value}")
            print()
            continue

        try:
            result = await middleware.handle_turn(user_id, message, generator)
        except Exception as e:
            print(f"Error generating response: {e}", file=sys.stderr)
            if verbose:
                import traceback
                traceback.print_exc()
            continue

        print(f"\nTutor: {result.final_text}\n")

        if verbose and result.findings:
            print("-" * 60)
            for finding in result.findings:
                status = "ok" if finding.valid else "corrected"
                print(f"  [{finding.kind.value}] {status}: {finding.original_span}")
            print("-" * 60 + "\n")

    middleware.end_conversation(user_id, user_id)


def main():
    """Main CLI entry point."""
    args = build_parser().parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    settings = Settings(
        llm_provider=args.provider,
        llm_model=args.model,
        verbose=args.verbose,
    )
    if args.profile_db:
        settings.profile_db_path = args.profile_db

    api_key = settings.get_llm_api_key()
    if not api_key:
        print(f"No API key configured for {settings.llm_provider}.", file=sys.stderr)
        sys.exit(1)

    generator = create_llm_client(settings.llm_provider, api_key=api_key, model=settings.llm_model)

    middleware = TutorMiddleware(
        settings=settings,
        feature_gate=StaticFeatureGate(FLAG_PRESETS[args.flags]()),
        profile_store=SQLiteProfileStore(settings.profile_db_path) if args.profile_db else None,
    )

    asyncio.run(chat(middleware, generator, args.user, args.verbose))


if __name__ == "__main__":
    main()
