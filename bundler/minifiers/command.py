"""Minification through an external process."""
import logging
import os
import subprocess
import tempfile
from pathlib import Path

from bundler.errors import MinifierError
from bundler.minifiers.base import BaseMinifier

logger = logging.getLogger(__name__)


class CommandMinifier(BaseMinifier):
    """Runs a configurable command line, e.g. the YUI compressor.

    The command is a list of arguments in which ``{type}``, ``{input}`` and
    ``{output}`` are substituted, for example::

        ["java", "-jar", "yuicompressor.jar", "--type", "{type}", "-o", "{output}", "{input}"]
    """

    def __init__(self, command: list[str], work_dir: str | Path | None = None):
        """Initialize command minifier.

        Args:
            command: Argument list with placeholders
            work_dir: Directory for the temporary input/output files
        """
        self.command = list(command)
        self.work_dir = str(work_dir) if work_dir is not None else None

    def build_command(self, asset_type: str, input_file: str, output_file: str) -> list[str]:
        """Substitute placeholders in the configured command."""
        return [
            arg.replace("{type}", asset_type)
            .replace("{input}", input_file)
            .replace("{output}", output_file)
            for arg in self.command
        ]

    def minify(self, source: bytes, asset_type: str) -> bytes:
        with tempfile.TemporaryDirectory(dir=self.work_dir, prefix="minify_") as tmp_dir:
            input_file = os.path.join(tmp_dir, f"input.{asset_type}")
            output_file = os.path.join(tmp_dir, f"output.{asset_type}")
            Path(input_file).write_bytes(source)

            command = self.build_command(asset_type, input_file, output_file)
            logger.info(f"Running minifier: {' '.join(command)}")
            try:
                result = subprocess.run(command, capture_output=True)
            except OSError as e:
                raise MinifierError(
                    f"Could not run minifier for {asset_type}: {e}\nCommand was:\n{' '.join(command)}"
                ) from e

            if result.returncode != 0:
                stderr = result.stderr.decode("utf-8", errors="replace").strip()
                raise MinifierError(
                    f"Could not create compressed {asset_type} file "
                    f"(exit status {result.returncode}).\n"
                    f"Command was:\n{' '.join(command)}\n{stderr}"
                )

            # Commands without an {output} placeholder write to stdout
            if not any("{output}" in arg for arg in self.command):
                return result.stdout

            if not os.path.exists(output_file):
                raise MinifierError(
                    f"Minifier did not write {output_file}.\nCommand was:\n{' '.join(command)}"
                )
            return Path(output_file).read_bytes()
