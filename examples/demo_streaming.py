"""
Demo: Streaming Responses in Console
Run: python examples/demo_streaming.py
"""
import os
import asyncio
from dotenv import load_dotenv
from polyllm import Client, StreamTransportError

load_dotenv()


def get_weather(city: str) -> str:
    """Current weather for a city."""
    return f"18C and cloudy in {city}"


def main():
    if not os.getenv("OPENAI_API_KEY"):
        print("Please set OPENAI_API_KEY in .env")
        return

    client = Client()
    print("🤖: I'm ready! (Sync Streaming)")

    print("User: Count to 10 quickly.")
    print("AI: ", end="", flush=True)

    stream = client.chat("gpt-4o-mini").stream("Count to 10 quickly.")
    try:
        for chunk in stream:
            print(chunk, end="", flush=True)
    except StreamTransportError as e:
        print(f"\n[stream broke after {len(e.partial_content)} chars]")
        return
    print(f"\n[{stream.response.usage.total_tokens} tokens, finish_reason={stream.response.finish_reason}]\n")

    # Tool calls are assembled from fragments and parsed once the stream ends
    response = client.chat("gpt-4o-mini").stream("Weather in Oslo?", tools=[get_weather]).collect()
    for call in response.tool_calls:
        print(f"Tool call: {call.name}({call.arguments})")


async def main_async():
    client = Client()
    print("🤖: Async mode activating! (Async Streaming)")

    print("User: Write a timber haiku.")
    print("AI: ", end="", flush=True)

    async for chunk in client.chat("claude-3-5-haiku-latest").stream_async("Write a haiku about timber."):
        print(chunk, end="", flush=True)
    print("\n")


if __name__ == "__main__":
    main()
    if os.getenv("ANTHROPIC_API_KEY"):
        asyncio.run(main_async())
