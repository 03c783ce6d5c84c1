"""External process execution."""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from branch_deploy.core.exceptions import CommandError
from branch_deploy.utils.logging import get_logger


@dataclass
class CommandResult:
    """Outcome of one external process."""

    argv: list[str]
    returncode: int
    stdout: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Runs external tools one at a time.

    By default the child inherits stdout and stderr so docker and pulumi
    output streams live into the CI log. ``capture=True`` collects stdout
    instead, for commands whose output is a value (``pulumi stack output``).
    There is no timeout; the invoked tool's own limits apply.
    """

    def __init__(self):
        self.logger = get_logger("runner")

    async def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        stdin: str | None = None,
        capture: bool = False,
        check: bool = True,
    ) -> CommandResult:
        """Run a command and wait for it to exit.

        Raises:
            CommandError: non-zero exit and ``check`` is set
        """
        argv = list(argv)
        self.logger.info(
            "runner.command",
            cmd=" ".join(argv),
            cwd=str(cwd) if cwd else None,
        )

        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd) if cwd else None,
            env=dict(env) if env is not None else None,
            stdin=asyncio.subprocess.PIPE if stdin is not None else None,
            stdout=asyncio.subprocess.PIPE if capture else None,
        )

        try:
            stdout, _ = await process.communicate(
                input=stdin.encode() if stdin is not None else None
            )
        except asyncio.CancelledError:
            # Interrupted: take the child down with us
            process.kill()
            await process.wait()
            raise

        result = CommandResult(
            argv=argv,
            returncode=process.returncode,
            stdout=stdout.decode() if stdout else "",
        )

        if check and not result.ok:
            self.logger.error(
                "runner.command_failed",
                cmd=" ".join(argv[:3]),
                returncode=result.returncode,
            )
            raise CommandError(argv, result.returncode)

        return result
