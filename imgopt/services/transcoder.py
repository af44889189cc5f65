import asyncio
import contextlib
import tempfile
from pathlib import Path

import structlog

from imgopt.core.exceptions import TranscodeProcessError

logger = structlog.get_logger()

STDERR_TAIL = 2000


class FfmpegTranscoder:
    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout: float = 60.0) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout

    def build_command(self, source: Path, target: Path) -> list[str]:
        return [
            self.ffmpeg_path,
            "-y",
            "-i",
            str(source),
            "-movflags",
            "faststart",
            "-pix_fmt",
            "yuv420p",
            "-vf",
            "scale=trunc(iw/2)*2:trunc(ih/2)*2",
            str(target),
        ]

    async def gif_to_mp4(self, data: bytes) -> bytes:
        with tempfile.TemporaryDirectory(prefix="imgopt-") as temp_dir:
            source = Path(temp_dir) / "input.gif"
            target = Path(temp_dir) / "output.mp4"
            source.write_bytes(data)
            stderr = await self._run(self.build_command(source, target))
            if not target.exists():
                raise TranscodeProcessError("ffmpeg produced no output", returncode=0, stderr=stderr)
            return target.read_bytes()

    async def _run(self, cmd: list[str]) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise TranscodeProcessError(f"{self.ffmpeg_path} not found") from e

        try:
            _, raw_stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            await _kill(process)
            logger.error("transcode_timeout", timeout=self.timeout)
            raise TranscodeProcessError(f"ffmpeg timed out after {self.timeout}s") from e
        except asyncio.CancelledError:
            await _kill(process)
            raise

        stderr = raw_stderr.decode(errors="replace")[-STDERR_TAIL:] if raw_stderr else ""
        if process.returncode != 0:
            logger.error("transcode_failed", returncode=process.returncode, stderr=stderr)
            raise TranscodeProcessError(
                f"ffmpeg exited with status {process.returncode}",
                returncode=process.returncode,
                stderr=stderr,
            )
        return stderr


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()
