"""Shell profile writers used to export rotated secrets."""

import logging
import os
import re
import shlex
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence

from ..utils.errors import EnvSyncError

logger = logging.getLogger(__name__)

PROFILE_MARKER = "# Auto-updated by secret-rotator"
# Marker lines recognised on removal, including the spelling older releases wrote
KNOWN_MARKERS = (PROFILE_MARKER, "# Auto-updated by secret rotator")
DEFAULT_PROFILES = (".bashrc", ".bash_profile", ".zshrc", ".profile")


def _assignment_pattern(name: str) -> "re.Pattern":
    return re.compile(rf"^\s*(export\s+)?{re.escape(name)}=")


class ProfileWriter(ABC):
    """Destination for environment variable assignments."""

    @abstractmethod
    def set_variable(self, name: str, value: str) -> List[str]:
        """Set ``name`` to ``value``; returns the locations that were updated."""

    @abstractmethod
    def remove_variable(self, name: str) -> List[str]:
        """Remove ``name``; returns the locations that changed."""


class ShellProfileWriter(ProfileWriter):
    """Writes ``export NAME='value'`` lines into existing shell dotfiles."""

    def __init__(self, home_dir: Optional[str] = None, profiles: Sequence[str] = DEFAULT_PROFILES):
        """
        Initialize shell profile writer.

        Args:
            home_dir: Directory holding the profiles (defaults to the user's home)
            profiles: Profile file names relative to ``home_dir``
        """
        self.home_dir = Path(home_dir or os.path.expanduser("~"))
        self.profiles = list(profiles)

    def existing_profiles(self) -> List[Path]:
        """Profiles that exist; missing ones are never created."""
        return [self.home_dir / name for name in self.profiles if (self.home_dir / name).is_file()]

    def set_variable(self, name: str, value: str) -> List[str]:
        """
        Export ``name`` in every existing profile.

        Existing ``export NAME=`` or ``NAME=`` lines are replaced in place;
        otherwise a marker comment and an export line are appended.

        Args:
            name: Environment variable name
            value: Value to export, shell quoted on write

        Returns:
            List[str]: Paths of the profiles that were written
        """
        line = f"export {name}={shlex.quote(value)}"
        pattern = _assignment_pattern(name)
        updated = []

        for profile in self.existing_profiles():
            lines = self._read(profile)
            replaced = False
            for index, existing in enumerate(lines):
                if pattern.match(existing):
                    lines[index] = line
                    replaced = True

            if not replaced:
                if lines and lines[-1].strip():
                    lines.append("")
                lines.extend([PROFILE_MARKER, line])

            self._write(profile, lines)
            updated.append(str(profile))
            logger.info("Updated %s in %s", name, profile)

        if not updated:
            logger.warning(
                "No shell profiles found in %s (looked for %s); %s was not exported",
                self.home_dir,
                ", ".join(self.profiles),
                name,
            )
        return updated

    def remove_variable(self, name: str) -> List[str]:
        """Remove ``name`` assignments, and the marker line written with them."""
        pattern = _assignment_pattern(name)
        changed = []

        for profile in self.existing_profiles():
            lines = self._read(profile)
            kept: List[str] = []
            for existing in lines:
                if pattern.match(existing):
                    if kept and kept[-1].strip() in KNOWN_MARKERS:
                        kept.pop()
                    continue
                kept.append(existing)

            if kept != lines:
                self._write(profile, kept)
                changed.append(str(profile))
                logger.info("Removed %s from %s", name, profile)

        return changed

    def _read(self, profile: Path) -> List[str]:
        try:
            return profile.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise EnvSyncError(f"Failed to read shell profile {profile}", details=e.strerror) from e

    def _write(self, profile: Path, lines: List[str]) -> None:
        """Replace the profile atomically, keeping its permissions."""
        content = "\n".join(lines) + "\n"
        fd, tmp_path = tempfile.mkstemp(dir=str(profile.parent), prefix=f".{profile.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            shutil.copymode(str(profile), tmp_path)
            os.replace(tmp_path, str(profile))
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise EnvSyncError(f"Failed to update shell profile {profile}", details=e.strerror) from e
