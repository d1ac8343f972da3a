"""
Drive a running postgen server through its generation endpoints.

Usage:
    python scripts/simulate_generation.py
    python scripts/simulate_generation.py --mode single --topic "Cua hoàng đế"
    python scripts/simulate_generation.py --mode multi --action multipass
    python scripts/simulate_generation.py --mode stream --session-id <id>   # resume
"""
import argparse
import asyncio
import json
import logging

import httpx

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BASE_URL = "http://localhost:8000"


async def simulate_single_pass(topic: str):
    """One blocking call returning a post plus three style variations."""
    async with httpx.AsyncClient(timeout=120) as client:
        resp = await client.post(f"{BASE_URL}/api/v1/generation/single-pass", json={"topic": topic})
        logger.info("Single-pass response: %s %s", resp.status_code, resp.json())
        return resp


async def simulate_multi_pass(idea: str, action: str, session_id: str = None):
    payload = {"idea": idea, "action": action, "checkSimilarity": True}
    if session_id:
        payload["sessionId"] = session_id
    async with httpx.AsyncClient(timeout=300) as client:
        resp = await client.post(f"{BASE_URL}/api/v1/generation/multi-pass", json=payload)
        logger.info("Multi-pass response: %s %s", resp.status_code, resp.json())
        return resp


async def simulate_stream(idea: str, action: str, session_id: str = None):
    """Print pass events as they arrive. Re-run with --session-id to resume after an error."""
    payload = {"idea": idea, "action": action}
    if session_id:
        payload["sessionId"] = session_id
    async with httpx.AsyncClient(timeout=300) as client:
        async with client.stream("POST", f"{BASE_URL}/api/v1/generation/stream", json=payload) as resp:
            logger.info("Stream opened: %s session=%s", resp.status_code, resp.headers.get("X-Session-ID"))
            async for line in resp.aiter_lines():
                if not line.startswith("data: "):
                    continue
                event = json.loads(line[len("data: "):])
                if event["type"] == "pass-chunk":
                    print(event["text"], end="", flush=True)
                elif event["type"] == "error":
                    logger.error("Pipeline error: %s", event)
                else:
                    logger.info("%s %s", event["type"], event.get("pass"))


async def main():
    parser = argparse.ArgumentParser(description="Simulate content generation requests")
    parser.add_argument("--mode", default="stream", choices=["single", "multi", "stream"])
    parser.add_argument("--topic", default="Hải sản tươi Cô Tô")
    parser.add_argument("--idea", default="Fresh crab delivery")
    parser.add_argument("--action", default="multipass")
    parser.add_argument("--session-id", default=None)
    args = parser.parse_args()

    logger.info("Simulating %s generation...", args.mode)

    if args.mode == "single":
        await simulate_single_pass(args.topic)
    elif args.mode == "multi":
        await simulate_multi_pass(args.idea, args.action, args.session_id)
    elif args.mode == "stream":
        await simulate_stream(args.idea, args.action, args.session_id)


if __name__ == "__main__":
    asyncio.run(main())
