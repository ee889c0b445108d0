"""Interactive example: a note-taking assistant that streams its replies.

Demonstrates:
- Defining tools with @tool and pre-filling arguments with Tool.bind
- Picking a provider backend at startup
- Streaming a turn with Agent.send_stream and keeping the history
- Optional OpenTelemetry tracing

Usage:
    uv run --env-file=.env examples/notes_agent_example.py --provider openai --model gpt-4o-mini --trace
    uv run examples/notes_agent_example.py --provider compatible --url http://localhost:8000/v1 --model Qwen/Qwen3-8B
"""

import argparse
import asyncio

from tributary import Agent, AgentConfig, Message
from tributary.providers import (
    AnthropicProvider,
    GoogleProvider,
    ModelProvider,
    OpenAICompatibleProvider,
    OpenAIProvider,
    OpenAIResponsesProvider,
    OpenRouterProvider,
)
from tributary.tools import tool

PROVIDERS = {
    "openai": lambda url: OpenAIProvider(),
    "responses": lambda url: OpenAIResponsesProvider(),
    "anthropic": lambda url: AnthropicProvider(),
    "google": lambda url: GoogleProvider(),
    "openrouter": lambda url: OpenRouterProvider(),
    "compatible": lambda url: OpenAICompatibleProvider(url),
}


def make_provider(provider: str, url: str | None) -> ModelProvider:
    if provider == "compatible" and not url:
        raise SystemExit("--url is required for the compatible provider")
    return PROVIDERS[provider](url)


def setup_tracing(service_name: str):
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        SimpleSpanProcessor, ConsoleSpanExporter,
    )
    from tributary.instrumentation import instrument

    provider = TracerProvider(
        resource=Resource({SERVICE_NAME: service_name})
    )
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    instrument()


@tool
def add_note(notes: dict, title: str, content: str):
    """Save a note with the given title and content."""
    notes[title] = content
    return f"Saved note '{title}'."


@tool
def get_note(notes: dict, title: str):
    """Retrieve a note by title."""
    return notes.get(title, f"No note found with title '{title}'.")


@tool
def list_notes(notes: dict):
    """List all saved note titles."""
    return ", ".join(notes) or "No notes yet."


@tool
def delete_note(notes: dict, title: str):
    """Delete a note by title."""
    if notes.pop(title, None) is None:
        return f"No note found with title '{title}'."
    return f"Deleted note '{title}'."


async def main():
    parser = argparse.ArgumentParser(description="Notes agent")
    parser.add_argument("--provider", choices=PROVIDERS, default="openai")
    parser.add_argument("--model", default="gpt-4o-mini")
    parser.add_argument("--url", default=None)
    parser.add_argument("--thinking", action="store_true")
    parser.add_argument("--trace", action="store_true")
    args = parser.parse_args()

    if args.trace:
        setup_tracing("notes-agent")

    notes: dict[str, str] = {}
    agent = Agent(
        make_provider(args.provider, args.url),
        args.model,
        tools=[t.bind(notes=notes) for t in (add_note, get_note, list_notes, delete_note)],
        system_prompt=(
            "You are a helpful note-taking assistant. "
            "Use the provided tools to manage the user's notes. "
            "When the user asks to save, find, list, or delete notes, "
            "always use the appropriate tool."
        ),
        config=AgentConfig(thinking=args.thinking),
    )

    history: list[Message] = []
    print("Note-taking Assistant\n")

    while True:
        try:
            user_input = input("You: ")
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        history.append(Message.user(user_input))
        print("Assistant: ", end="", flush=True)
        async for result in agent.send_stream(history=history):
            print(result.output.text, end="", flush=True)
            history.extend(result.messages)
        print("\n")


if __name__ == "__main__":
    asyncio.run(main())
