"""
demo_flow.py -- End-to-end run of the guidance pipeline from the command line.

1. Restore the cached emotion mapping (or use the built-in default)
2. Optionally refresh the mapping from the generation providers
3. Classify the given utterance
4. Generate the recommended meditation script

Usage:
    python -m engine.demo_flow --text "我今天特别开心，一切都很好"
    python -m engine.demo_flow --text "有点紧张" --offline --phased
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

import anthropic
import httpx

from engine.config import Settings, load_settings
from engine.gateway import ProviderGateway
from engine.meditation import ContentGenerator, compose_affirmation, recommend_meditation
from engine.orchestrator import ClassificationOrchestrator
from engine.refresher import MappingRefresher, bootstrap
from mood.adapters.json_store import JsonFileStore
from mood.mapping_store import MappingStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("mood.demo")


async def run_demo(
    text: str,
    settings: Settings,
    refresh: bool = False,
    phased: bool = False,
) -> dict:
    """Run the pipeline once and return what was produced."""
    store = MappingStore(JsonFileStore(settings.mapping_cache_dir))
    claude_client: Optional[anthropic.AsyncAnthropic] = None
    if settings.anthropic_api_key:
        claude_client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)

    async with httpx.AsyncClient(timeout=30.0) as http_client:
        gateway = ProviderGateway(http_client, claude_client)
        bootstrap(store)

        if refresh:
            logger.info("STEP 1: Refreshing emotion mapping")
            refresher = MappingRefresher(store, gateway, settings.mapping_providers())
            updated = await refresher.refresh()
            logger.info("Mapping refreshed: %s", updated)

        logger.info("STEP 2: Classifying utterance")
        orchestrator = ClassificationOrchestrator(
            store, gateway, settings.classifier_provider(), settings.generation_providers(),
        )
        result = await orchestrator.classify_utterance(text)
        logger.info("Emotion: %s (confidence %.2f)", result.emotion, result.confidence)

        logger.info("STEP 3: Generating meditation script")
        prompt = recommend_meditation(result.emotion)
        generator = ContentGenerator(gateway, settings.generation_providers())
        if phased:
            script: str | list[str] = generator.generate_phase_scripts(prompt)
        else:
            script = await generator.generate_script(prompt, result.emotion)

    if claude_client is not None:
        await claude_client.close()

    return {
        "result": result,
        "affirmation": compose_affirmation(text, result, prompt.scene),
        "meditation": prompt,
        "script": script,
    }


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Emotion guidance -- demo flow")
    parser.add_argument("--text", type=str, required=True, help="Transcribed utterance to analyze")
    parser.add_argument("--refresh", action="store_true", help="Refresh the emotion mapping first")
    parser.add_argument("--offline", action="store_true", help="Ignore configured providers")
    parser.add_argument("--phased", action="store_true", help="Print the script as three phases")
    args = parser.parse_args(argv)

    settings = load_settings()
    if args.offline:
        settings = settings.model_copy(update={"anthropic_api_key": "", "hf_api_token": ""})
        logger.info("Offline mode: remote providers disabled")

    output = asyncio.run(run_demo(args.text, settings, refresh=args.refresh, phased=args.phased))
    print(output["affirmation"])
    print()
    script = output["script"]
    print("\n\n---\n\n".join(script) if isinstance(script, list) else script)


if __name__ == "__main__":
    main(sys.argv[1:])
