"""Local BFV ciphertext addition through the ``bfv_calc`` binary."""

from __future__ import annotations

import logging
import subprocess

from medquery.core.errors import BackendUnavailableError, DecryptionError

logger = logging.getLogger(__name__)


class BfvCliClient:
    """Runs ``bfv_calc addMany`` with one ciphertext per stdin line.

    The binary prints the sum ciphertext on its first stdout line and exits
    non-zero on malformed input.
    """

    def __init__(self, binary_path: str, *, timeout: float = 10.0) -> None:
        self._binary_path = binary_path
        self._timeout = timeout

    def add_many(self, ciphertexts: list[str]) -> str:
        if not ciphertexts:
            raise ValueError("add_many requires at least one ciphertext")
        try:
            completed = subprocess.run(
                [self._binary_path, "addMany"],
                input="\n".join(ciphertexts) + "\n",
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise BackendUnavailableError(
                f"bfv_calc timed out after {self._timeout}s"
            ) from exc
        except OSError as exc:
            raise BackendUnavailableError(f"Cannot run bfv_calc: {exc}") from exc

        if completed.returncode != 0:
            logger.warning("bfv_calc exited with %d: %s", completed.returncode, completed.stderr.strip())
            raise DecryptionError(f"bfv_calc addMany failed with exit code {completed.returncode}")

        lines = completed.stdout.splitlines()
        if not lines or not lines[0].strip():
            raise DecryptionError("bfv_calc addMany produced no output")
        return lines[0].strip()
