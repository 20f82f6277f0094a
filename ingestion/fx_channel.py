"""ingestion/fx_channel.py — File I/O for the FX command/response channel.

The scripting host inside the mixer polls a command file and writes its
answers to a response file.  This module is the only code that touches
those two files; the grammar lives in core/mixer/fx_protocol.py.

Both files are shared, unsynchronised resources.  Callers must make sure
only one request is in flight at a time (see ingestion/fx_broker.py).

Error handling
──────────────
Write, truncate and read failures (undecodable content included) surface
as ``OSError``.  A response file that does not exist yet reads as empty:
the host creates it on first answer.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass
class FxFileChannel:
    """Command and response files shared with the scripting host.

    Usage::

        channel = FxFileChannel(Path("/tmp/fx_commands.txt"), Path("/tmp/fx_response.txt"))
        channel.clear_response()
        channel.append_command("R,3\\n")
        content = channel.read_response()
    """

    command_path: Path
    response_path: Path

    @classmethod
    def from_paths(cls, command_file: str, response_file: str) -> FxFileChannel:
        return cls(Path(command_file), Path(response_file))

    def append_command(self, line: str) -> None:
        """Append one newline-terminated command line.

        Raises:
            OSError: If the command file cannot be opened or written.
        """
        if not line.endswith("\n"):
            line += "\n"
        with self.command_path.open("a", encoding="utf-8") as fh:
            fh.write(line)

    def clear_response(self) -> None:
        """Truncate the response file (creating it if needed).

        Raises:
            OSError: If the response file cannot be written.
        """
        self.response_path.write_text("", encoding="utf-8")

    def read_response(self) -> str:
        """Return the current response file content, ``""`` if it does not exist.

        Raises:
            OSError: On read failures other than a missing file, including
                content that is not valid UTF-8.
        """
        try:
            return self.response_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""
        except UnicodeDecodeError as exc:
            raise OSError(f"{self.response_path}: response is not UTF-8 ({exc.reason})") from exc
