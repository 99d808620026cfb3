"""Code execution tool.

Runs the snippet in a child interpreter with a wall-clock limit. This is
process isolation only, not a security sandbox; deploy behind one.
"""

from __future__ import annotations

import asyncio
import shutil
import sys
import tempfile
from pathlib import Path

from ..schemas import ExecuteCodeInput, ExecuteCodeOutput, ToolContext
from ..settings import ToolSettings

_SUFFIXES = {"python": ".py", "javascript": ".js"}


def _interpreter(language: str) -> list[str]:
    if language == "python":
        return [sys.executable, "-I"]
    node = shutil.which("node")
    if not node:
        raise RuntimeError("JavaScript runtime (node) is not installed on this host")
    return [node]


def _clip(text: str, limit: int) -> tuple[str, bool]:
    if len(text) <= limit:
        return text, False
    return text[:limit], True


async def execute_code(
    payload: ExecuteCodeInput, context: ToolContext, *, settings: ToolSettings
) -> ExecuteCodeOutput:
    command = _interpreter(payload.language)
    with tempfile.TemporaryDirectory(prefix="relay-sandbox-") as workdir:
        script = Path(workdir) / f"script{_SUFFIXES[payload.language]}"
        script.write_text(payload.code, encoding="utf-8")
        proc = await asyncio.create_subprocess_exec(
            *command,
            str(script),
            cwd=workdir,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=settings.code_timeout_s)
        except asyncio.TimeoutError:
            raise TimeoutError(f"Code execution timed out after {settings.code_timeout_s:g}s") from None
        finally:
            # Also covers cancellation: never leave the child running.
            if proc.returncode is None:
                proc.kill()
                await proc.wait()

    out, out_clipped = _clip(stdout.decode("utf-8", errors="replace"), settings.max_output_chars)
    err, err_clipped = _clip(stderr.decode("utf-8", errors="replace"), settings.max_output_chars)
    return ExecuteCodeOutput(
        language=payload.language,
        exit_code=proc.returncode,
        stdout=out,
        stderr=err,
        truncated=out_clipped or err_clipped,
    )
