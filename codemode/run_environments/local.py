"""Local run environment: write the code to a temp script and run it in a subprocess."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import sys
import tempfile
import time
from pathlib import Path

from codemode.run_environments.types import ExecutionOptions, ExecutionResult

logger = logging.getLogger(__name__)

# language -> (script suffix, interpreter argv prefix)
LANGUAGES: dict[str, tuple[str, tuple[str, ...]]] = {
    "python": (".py", (sys.executable,)),
    "python3": (".py", (sys.executable,)),
    "node": (".js", ("node",)),
    "javascript": (".js", ("node",)),
    "typescript": (".ts", ("ts-node",)),
    "bash": (".sh", ("bash",)),
    "sh": (".sh", ("sh",)),
    "ruby": (".rb", ("ruby",)),
}
_FALLBACK = (".txt", ("cat",))


class LocalRunEnvironment:
    """Run code on this machine. Not isolated in any way."""

    def __init__(self, work_dir: str | Path | None = None) -> None:
        self._work_dir = Path(work_dir) if work_dir else Path(tempfile.gettempdir()) / "codemode"
        self._script_dir: Path | None = None

    @property
    def working_directory(self) -> str:
        return str(self._work_dir)

    def _script_path(self, suffix: str) -> Path:
        self._work_dir.mkdir(parents=True, exist_ok=True)
        if self._script_dir is None:
            self._script_dir = Path(tempfile.mkdtemp(prefix="codemode-script-"))
        return self._script_dir / f"script{suffix}"

    async def execute(self, code: str, options: ExecutionOptions | None = None) -> ExecutionResult:
        options = options or ExecutionOptions()
        suffix, argv = LANGUAGES.get(options.language, _FALLBACK)
        start = time.perf_counter()

        def elapsed() -> float:
            return (time.perf_counter() - start) * 1000

        script = self._script_path(suffix)
        script.write_text(code, encoding="utf-8")
        if suffix == ".sh":
            script.chmod(0o755)

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                str(script),
                cwd=options.cwd or str(self._work_dir),
                env={**os.environ, **options.env},
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.error("Cannot start %s: %s", argv[0], exc)
            return ExecutionResult(success=False, exit_code=None, execution_time_ms=elapsed(), error=str(exc))

        timeout_s = options.timeout_ms / 1000
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout_s)
        except asyncio.TimeoutError:
            proc.kill()
            stdout, stderr = await proc.communicate()
            logger.warning("Local execution timed out after %.1fs", timeout_s)
            return ExecutionResult(
                success=False,
                stdout=stdout.decode("utf-8", "replace").strip(),
                stderr=stderr.decode("utf-8", "replace").strip(),
                exit_code=proc.returncode,
                execution_time_ms=elapsed(),
                error=f"Execution timed out after {timeout_s:g}s",
            )

        exit_code = proc.returncode
        result = ExecutionResult(
            success=exit_code == 0,
            stdout=stdout.decode("utf-8", "replace").strip(),
            stderr=stderr.decode("utf-8", "replace").strip(),
            exit_code=exit_code,
            execution_time_ms=elapsed(),
        )
        if exit_code != 0:
            result.error = f"Command exited with status {exit_code}"
        logger.info(
            "Local execution (%s) finished: exit %s in %.0f ms",
            options.language,
            exit_code,
            result.execution_time_ms,
        )
        return result

    async def is_ready(self) -> bool:
        result = await self.execute('echo "ready"', ExecutionOptions(language="sh", timeout_ms=5_000))
        return result.success

    async def cleanup(self) -> None:
        if self._script_dir is not None:
            shutil.rmtree(self._script_dir, ignore_errors=True)
            self._script_dir = None
