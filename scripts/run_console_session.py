#!/usr/bin/env python
"""Console client for dialogue_recall sessions.

Runs a recall session against real MongoDB and LLM APIs, speaking the same
JSON protocol a websocket client would. Plain lines are sent as learner
messages; slash commands map to the other client messages.

Usage:
    python scripts/run_console_session.py set_history
    python scripts/run_console_session.py set_history --seed recall_set.json

Commands:
    /leave            finish (or pause) the session and quit
    /enter [topic]    enter the suggested tangent, or open one on a topic
    /exit             return from the current tangent
    /decline          decline the suggested tangent
    /dismiss          keep talking after every point is recalled

Environment variables (via .env):
    DIALOGUE_RECALL_MONGO_URI=mongodb://localhost:27017
    DIALOGUE_RECALL_MONGO_DATABASE=dialogue_recall
    DIALOGUE_RECALL_LLM_PROVIDER=anthropic
    DIALOGUE_RECALL_LLM_API_KEY=your_api_key
    DIALOGUE_RECALL_LLM_MODEL=claude-sonnet-4-20250514

Seed file format:
    {"recall_set": {"id": ..., "name": ...},
     "points": [{"id": ..., "content": ..., "context": ...}, ...]}
"""

import argparse
import asyncio
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from dialogue_recall.config import DialogueRecallConfig
from dialogue_recall.infra.mongo.repositories import MongoSessionRepository
from dialogue_recall.logging import get_logger
from dialogue_recall.models.recall import MemoryState, RecallPointDTO, RecallSetDTO
from dialogue_recall.protocol.handler import SessionChannelHandler
from dialogue_recall.session.orchestrator import SessionOrchestrator

logger = get_logger(__name__)

COMMANDS = {
    "/leave": "leave_session",
    "/enter": "enter_rabbithole",
    "/exit": "exit_rabbithole",
    "/decline": "decline_rabbithole",
    "/dismiss": "dismiss_overlay",
}


async def seed(config: DialogueRecallConfig, path: Path) -> None:
    """Store a recall set and its points, all due now."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)

    recall_set = RecallSetDTO.model_validate(data["recall_set"])
    now = datetime.now(UTC)
    repository = await MongoSessionRepository.from_config(config.mongo)
    try:
        await repository.save_recall_set(recall_set)
        for raw in data["points"]:
            point = RecallPointDTO(
                recall_set_id=recall_set.id,
                memory_state=MemoryState(due=now),
                **raw,
            )
            await repository.save_recall_point(point)
    finally:
        await repository.close()

    print(f"Seeded {len(data['points'])} point(s) into {recall_set.id!r}")


def to_client_message(line: str) -> dict[str, Any]:
    if not line.startswith("/"):
        return {"type": "user_message", "content": line}

    command, _, argument = line.partition(" ")
    if command not in COMMANDS:
        raise ValueError(f"Unknown command {command}; expected one of {sorted(COMMANDS)}")
    message: dict[str, Any] = {"type": COMMANDS[command]}
    if command == "/enter" and argument.strip():
        message["topic"] = argument.strip()
    return message


async def show(message: dict[str, Any]) -> None:
    """Print one server message the way a chat client would render it."""
    match message["type"]:
        case "session_started":
            print(
                f"\n[session {message['session_id']}: "
                f"{message['recalled_count']}/{message['total_points']} recalled]"
            )
            print(f"\ntutor> {message['opening_message']}")
        case "assistant_chunk":
            if message["chunk_index"] == 0:
                print("\ntutor> ", end="")
            print(message["content"], end="", flush=True)
        case "assistant_complete":
            print()
        case "point_recalled":
            print(
                f"  * recalled {message['point_id']} "
                f"({message['recalled_count']}/{message['total_points']})"
            )
        case "session_complete_overlay":
            print(f"\n  {message['message']} Type /leave to finish or /dismiss to keep going.")
        case "rabbithole_detected":
            print(f"\n  Tangent spotted: {message['topic']!r}.")
            print("  /enter to explore, /decline to skip.")
        case "rabbithole_entered":
            print(f"\n  Exploring {message['topic']!r}. /exit to return.")
        case "rabbithole_exited":
            print(
                f"\n  Back from {message['label']!r} "
                f"({message['points_recalled_during']} recalled along the way)"
            )
        case "session_paused":
            print(f"\nSession paused at {message['recalled_count']}/{message['total_points']}.")
        case "session_complete":
            print("\nSession complete:")
            print(json.dumps(message["summary"], indent=2, default=str))
        case "error":
            print(f"\n  error [{message['code']}]: {message['message']}")


async def run(recall_set_id: str, config: DialogueRecallConfig) -> None:
    orchestrator = await SessionOrchestrator.from_config(config)
    handler = SessionChannelHandler(orchestrator, show)
    try:
        if not await handler.open(recall_set_id):
            return

        while not handler.closed:
            line = (await asyncio.to_thread(input, "\nyou> ")).strip()
            if not line:
                continue
            try:
                message = to_client_message(line)
            except ValueError as e:
                print(f"  {e}")
                continue

            await handler.handle_raw(json.dumps(message))
            if message["type"] == "leave_session":
                break
    finally:
        await orchestrator.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a recall session in the console")
    parser.add_argument("recall_set_id", help="ID of the recall set to study")
    parser.add_argument("--seed", type=Path, help="JSON file with a recall set to store first")
    args = parser.parse_args()

    config = DialogueRecallConfig()
    try:
        if args.seed:
            asyncio.run(seed(config, args.seed))
        asyncio.run(run(args.recall_set_id, config))
    except (KeyboardInterrupt, EOFError):
        logger.info("console_session_interrupted")


if __name__ == "__main__":
    main()
