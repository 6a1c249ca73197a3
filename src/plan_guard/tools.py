# tools.py
# Built-in tools. Each one is an async function wrapped by define_tool.
# The executor reaches them only through ToolRegistry.execute_tool.

import asyncio
from pathlib import Path
from typing import Any

import httpx

from plan_guard.builder import define_tool
from plan_guard.config import settings
from plan_guard.models import Tool, ToolResult
from plan_guard.registry import ToolRegistry

SUMMARY_LIMIT = 4000


@define_tool(
    "echo",
    "Echo a message back to the caller",
    category="utility",
    parameters={"message": {"type": "string", "description": "Text to echo", "required": True}},
    examples=["echo hello world"],
)
async def echo(payload: dict[str, Any], user_id: str) -> ToolResult:
    message = payload.get("message", "")
    return ToolResult(action="echo", status="success", message=message, data={"message": message})


@define_tool(
    "summarize",
    f"Condense text to at most {SUMMARY_LIMIT} characters",
    category="text",
    parameters={"text": {"type": "string", "description": "Text to summarize", "required": True}},
    examples=["summarize the search results"],
)
async def summarize(payload: dict[str, Any], user_id: str) -> ToolResult:
    text = payload.get("text", "").strip()
    if not text:
        return ToolResult(action="summarize", status="error", error="no text provided")
    summary = text[:SUMMARY_LIMIT]
    return ToolResult(
        action="summarize",
        status="success",
        message=summary,
        data={"truncated": len(text) > SUMMARY_LIMIT, "length": len(summary)},
    )


def _resolve_in_workspace(path: str) -> Path | None:
    """Absolute target for `path` under the workspace, or None if it escapes."""
    root = Path(settings.workspace_dir).resolve()
    target = (root / path).resolve()
    if target != root and root not in target.parents:
        return None
    return target


def _write_text(target: Path, content: str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")


@define_tool(
    "file_write",
    "Write text to a file inside the workspace directory",
    category="filesystem",
    parameters={
        "path": {"type": "string", "description": "Path relative to the workspace", "required": True},
        "content": {"type": "string", "description": "File contents"},
    },
    examples=["save notes to notes/summary.txt"],
)
async def file_write(payload: dict[str, Any], user_id: str) -> ToolResult:
    path = payload.get("path", "").strip()
    content = payload.get("content") or ""
    if not path:
        return ToolResult(action="file_write", status="error", error="no path provided")

    target = _resolve_in_workspace(path)
    if target is None:
        return ToolResult(
            action="file_write",
            status="error",
            error=f"SECURITY BLOCK: '{path}' resolves outside the workspace",
        )

    await asyncio.to_thread(_write_text, target, content)
    return ToolResult(
        action="file_write",
        status="success",
        message=f"Wrote {len(content)} bytes to {path}.",
        data={"path": str(target), "bytes": len(content)},
    )


@define_tool(
    "http_post",
    "POST a JSON payload to a URL",
    category="network",
    parameters={
        "url": {"type": "string", "description": "Target URL", "required": True, "pattern": r"^https?://"},
        "payload": {"type": "object", "description": "JSON body"},
    },
    examples=["post the summary to a webhook"],
)
async def http_post(payload: dict[str, Any], user_id: str) -> ToolResult:
    url = payload["url"].strip()
    body = payload.get("payload") or {}

    async with httpx.AsyncClient(timeout=settings.http_timeout_s) as client:
        response = await client.post(url, json=body)

    message = f"POST {url} → {response.status_code} ({len(response.content)} bytes)"
    if response.is_error:
        return ToolResult(action="http_post", status="error", message=message, error=message)
    return ToolResult(
        action="http_post",
        status="success",
        message=message,
        data={"status_code": response.status_code},
    )


BUILTIN_TOOLS: list[Tool] = [echo, summarize, file_write, http_post]


def register_builtin_tools(registry: ToolRegistry) -> None:
    for tool in BUILTIN_TOOLS:
        registry.register(tool)
