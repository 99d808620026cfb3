"""Command-line client for the Relay agent server."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Iterable, Iterator

import httpx


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chat with a Relay agent")
    parser.add_argument("message", help="User message")
    parser.add_argument("--agent-url", default="http://localhost:7002", help="Agent server base URL")
    parser.add_argument("--agent-name", default="Relay Assistant", help="Agent display name")
    parser.add_argument("--tools", default=None, help="Comma-separated tool names, or 'all'")
    parser.add_argument("--stream", action="store_true", help="Stream the answer as it is generated")
    parser.add_argument("--timeout", type=float, default=120.0, help="Request timeout seconds")
    parser.add_argument("--verbose", action="store_true", help="Print execution log and trace id")
    return parser


def build_payload(args: argparse.Namespace) -> dict[str, Any]:
    agent: dict[str, Any] = {"name": args.agent_name}
    if args.tools is not None:
        agent["tools"] = [name.strip() for name in args.tools.split(",") if name.strip()]
    return {"message": args.message, "agent": agent}


def iter_sse_events(lines: Iterable[str]) -> Iterator[dict[str, Any]]:
    """Decode ``data:`` frames; other SSE fields and blank lines are ignored."""
    for line in lines:
        if not line.startswith("data:"):
            continue
        body = line[len("data:") :].strip()
        if body:
            yield json.loads(body)


def _run_buffered(client: httpx.Client, url: str, payload: dict[str, Any], verbose: bool) -> int:
    resp = client.post(f"{url}/v1/chat", json=payload)
    if resp.status_code >= 400:
        print(f"Request failed: {resp.status_code}")
        print(resp.text)
        return 1

    data = resp.json()
    print(data.get("response", ""))
    if verbose:
        print("\n--- trace_id ---")
        print(data.get("trace_id"))
        print("\n--- execution_log ---")
        print(json.dumps(data.get("execution_log", []), ensure_ascii=False, indent=2))
    return 0


def _run_streaming(client: httpx.Client, url: str, payload: dict[str, Any], verbose: bool) -> int:
    exit_code = 0
    with client.stream("POST", f"{url}/v1/chat/stream", json=payload) as resp:
        if resp.status_code >= 400:
            resp.read()
            print(f"Request failed: {resp.status_code}")
            print(resp.text)
            return 1
        for event in iter_sse_events(resp.iter_lines()):
            kind = event.get("type")
            if kind == "content":
                sys.stdout.write(event["content"])
                sys.stdout.flush()
            elif kind == "tool_start" and verbose:
                print(f"\n[tools] {', '.join(event['tools'])}")
            elif kind == "tool_result" and verbose:
                status = "ok" if event.get("success") else "failed"
                print(f"[tool] {event['tool']}: {status}")
            elif kind == "max_iterations":
                print(event.get("response", ""))
            elif kind == "error":
                print(f"\nError: {event.get('error')}")
                exit_code = 1
            elif kind == "done":
                print()
                if verbose:
                    print(f"--- trace_id: {event.get('trace_id')} ---")
    return exit_code


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    payload = build_payload(args)

    # Avoid inheriting system proxy settings that can break localhost calls.
    try:
        with httpx.Client(timeout=args.timeout, trust_env=False) as client:
            if args.stream:
                return _run_streaming(client, args.agent_url, payload, args.verbose)
            return _run_buffered(client, args.agent_url, payload, args.verbose)
    except httpx.ReadTimeout:
        print("Request timed out. The server may still be processing the request.")
        print("Try again with a longer timeout, e.g. --timeout 300")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
