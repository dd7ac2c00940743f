from __future__ import annotations

import logging
import os
import shutil
import subprocess
from typing import List, Optional

from .models import MirrorConfig


logger = logging.getLogger(__name__)

# robocopy reports success with any exit code below 8 (bit flags for copied,
# extra and mismatched files).
_ROBOCOPY_FAILURE = 8


class MirrorToolError(RuntimeError):
    pass


class MirrorTool:
    """Runs the platform's bulk mirroring tool before validation."""

    def __init__(self, windows: Optional[bool] = None, retries: int = 3, wait_seconds: int = 5) -> None:
        self.windows = os.name == "nt" if windows is None else windows
        self.retries = retries
        self.wait_seconds = wait_seconds

    @property
    def executable(self) -> str:
        return "robocopy" if self.windows else "rsync"

    def build_command(self, config: MirrorConfig) -> List[str]:
        src = str(config.source_root)
        dst = str(config.destination_root)
        if self.windows:
            cmd = [
                "robocopy",
                src,
                dst,
                "/MIR",
                f"/MT:{config.workers}",
                f"/R:{self.retries}",
                f"/W:{self.wait_seconds}",
            ]
            if config.exclude_fragments:
                cmd.append("/XD")
                cmd.extend(config.exclude_fragments)
            return cmd
        cmd = ["rsync", "-a", "--delete"]
        for fragment in config.exclude_fragments:
            cmd.extend(["--exclude", fragment])
        cmd.extend([src.rstrip("/") + "/", dst.rstrip("/") + "/"])
        return cmd

    def is_success(self, returncode: int) -> bool:
        if self.windows:
            return 0 <= returncode < _ROBOCOPY_FAILURE
        return returncode == 0

    def run(self, config: MirrorConfig) -> int:
        if shutil.which(self.executable) is None:
            raise MirrorToolError(f"{self.executable} not found on PATH")
        cmd = self.build_command(config)
        logger.info("Mirroring %s -> %s with %s", config.source_root, config.destination_root, self.executable)
        logger.debug("Mirror command: %s", " ".join(cmd))
        try:
            process = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)
        except OSError as exc:
            raise MirrorToolError(f"Could not start {self.executable}: {exc}") from exc
        if not self.is_success(process.returncode):
            tail = "\n".join((process.stdout or "").splitlines()[-20:])
            raise MirrorToolError(f"{self.executable} exited with code {process.returncode}\n{tail}")
        logger.info("%s finished with code %d", self.executable, process.returncode)
        return process.returncode
