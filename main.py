#!/usr/bin/env python3
"""MentorAI tutor CLI."""

import argparse
import logging
import sys
from config.settings import Settings
from llm.errors import CompletionAPIError, TutorError
from orchestrator import TutorOrchestrator


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="MentorAI - AI tutor with memories, conversation titles and generated images"
    )
    parser.add_argument(
        "--question",
        "-q",
        type=str,
        required=True,
        help="Message to send to the tutor"
    )
    parser.add_argument(
        "--user",
        "-u",
        type=str,
        default="cli-user",
        help="User id the conversation and memories belong to (default: cli-user)"
    )
    parser.add_argument(
        "--model",
        "-m",
        type=str,
        default="gemini-2.5-flash-lite",
        help="Model id (default: gemini-2.5-flash-lite)"
    )
    parser.add_argument(
        "--image-model",
        type=str,
        help="Model id used by the generate_image tool"
    )
    parser.add_argument(
        "--conversation",
        "-c",
        type=str,
        help="Continue an existing conversation (a new one is created otherwise)"
    )
    parser.add_argument(
        "--db-path",
        type=str,
        help="Path to the SQLite database"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    settings_kwargs = {"verbose": args.verbose}
    if args.db_path:
        settings_kwargs["db_path"] = args.db_path
    settings = Settings(**settings_kwargs)

    orchestrator = TutorOrchestrator(settings=settings)
    store = orchestrator.store

    # Resume or start a conversation
    conversation = None
    if args.conversation:
        conversation = store.get_conversation(args.conversation, args.user)
        if not conversation:
            print(f"Conversation not found: {args.conversation}", file=sys.stderr)
            sys.exit(1)
    else:
        conversation = store.create_conversation(args.user)

    history = [
        {"role": m.role, "content": m.content}
        for m in store.list_messages(conversation.id)
    ]
    store.add_message(conversation.id, "user", args.question)
    history.append({"role": "user", "content": args.question})

    try:
        response = orchestrator.handle_chat(args.user, {
            "modelId": args.model,
            "imageModelId": args.image_model,
            "messages": history,
            "conversationId": conversation.id,
        })
    except CompletionAPIError as e:
        print(f"Completion API error ({e.status_code}): {e.body}", file=sys.stderr)
        sys.exit(1)
    except TutorError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        orchestrator.close()

    print("\n" + "="*60)
    print("SPEECH")
    print("="*60 + "\n")
    print(response.speech_content)
    print("\n" + "="*60)
    print("DISPLAY")
    print("="*60 + "\n")
    print(response.content)
    print(f"\n(conversation: {conversation.id})\n")


if __name__ == "__main__":
    main()
