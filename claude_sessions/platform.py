"""Cross-platform paths and OS actions for Claude Sessions.

Detects the runtime platform once at import time.  The session monitor
core never calls into this module's actions; they are pass-throughs the UI
invokes with fields from a :class:`~claude_sessions.core.models.Session`.

Supported platforms:
  - linux   (native Linux)
  - wsl     (Windows Subsystem for Linux)
  - macos   (macOS / Darwin)
  - windows (native Windows / PowerShell)
"""

from __future__ import annotations

import base64
import os
import platform
import shlex
import shutil
import subprocess
import sys
from pathlib import Path

from .log import logger

# ---------------------------------------------------------------------------
# Platform detection (runs once at import time)
# ---------------------------------------------------------------------------

_system = platform.system()  # "Linux", "Darwin", "Windows"

try:
    _uname_release = platform.uname().release.lower()
except OSError:
    _uname_release = ""

IS_WINDOWS = _system == "Windows"
IS_MACOS = _system == "Darwin"
IS_LINUX = _system == "Linux"
IS_WSL = IS_LINUX and "microsoft" in _uname_release

if IS_WINDOWS:
    PLATFORM = "windows"
elif IS_WSL:
    PLATFORM = "wsl"
elif IS_MACOS:
    PLATFORM = "macos"
else:
    PLATFORM = "linux"

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

STATUS_FILE_PREFIX = "claude-status"
STATUS_FILE_SUFFIX = ".json"


def default_session_dir() -> Path:
    """Return the status-file directory.

    Honors ``CLAUDE_SESSIONS_DIR``, defaults to ``~/.claude_sessions``.
    """
    env = os.environ.get("CLAUDE_SESSIONS_DIR")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".claude_sessions"


def claude_home() -> Path:
    """Return Claude Code's data dir.  Honors ``CLAUDE_CONFIG_DIR``."""
    env = os.environ.get("CLAUDE_CONFIG_DIR")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".claude"


def claude_projects_dir() -> Path:
    """Return ``~/.claude/projects`` where session indexes live."""
    return claude_home() / "projects"


def config_dir() -> Path:
    """Return the directory holding ``preferences.yaml``."""
    if IS_WINDOWS:
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "claude-sessions"
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / "claude-sessions"


def status_file_name(cwd: str) -> str:
    """Return the status filename the statusline hook writes for *cwd*.

    ``/home/u/proj`` -> ``claude-status--home-u-proj.json``
    """
    return f"{STATUS_FILE_PREFIX}-{cwd.replace('/', '-')}{STATUS_FILE_SUFFIX}"


def is_status_file_name(name: str) -> bool:
    return name.startswith(STATUS_FILE_PREFIX) and name.endswith(STATUS_FILE_SUFFIX)


def abbreviate_home(path_str: str) -> str:
    """Replace the user's home directory prefix with ``~``."""
    home = str(Path.home())
    if path_str == home or path_str.startswith(home + os.sep):
        return "~" + path_str[len(home) :]
    return path_str


# ---------------------------------------------------------------------------
# Resume command
# ---------------------------------------------------------------------------


def resume_command(cwd: str, session_id: str) -> str:
    """Shell command that resumes *session_id* inside *cwd*."""
    return f"cd {shlex.quote(cwd)} && claude -r {shlex.quote(session_id)}"


# ---------------------------------------------------------------------------
# Terminal and file browser
# ---------------------------------------------------------------------------

#: Linux terminal emulators tried in order, with the flag that runs a command.
_LINUX_TERMINALS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("x-terminal-emulator", ("-e",)),
    ("gnome-terminal", ("--",)),
    ("konsole", ("-e",)),
    ("kitty", ()),
    ("wezterm", ("start", "--")),
    ("alacritty", ("-e",)),
    ("xterm", ("-e",)),
)


def _applescript_quote(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def terminal_launch_args(path: str, command: str | None = None) -> list[str] | None:
    """Build the argv that opens a terminal at *path* (optionally running *command*).

    Returns ``None`` when no supported terminal is available.
    """
    script = command or f"cd {shlex.quote(path)} && clear"

    if IS_MACOS:
        return [
            "osascript",
            "-e",
            'tell application "Terminal"',
            "-e",
            "activate",
            "-e",
            f'do script "{_applescript_quote(script)}"',
            "-e",
            "end tell",
        ]

    if IS_WSL:
        # Windows Terminal runs Windows programs, so reach the Linux path
        # through wsl.exe in the same distro.
        wt = shutil.which("wt.exe")
        if not wt:
            return None
        args = [wt, "wsl.exe"]
        distro = os.environ.get("WSL_DISTRO_NAME")
        if distro:
            args += ["-d", distro]
        args += ["--cd", path]
        if command:
            shell = os.environ.get("SHELL", "/bin/bash")
            # wt.exe splits its own command line on unescaped ';'.
            args += ["--", shell, "-lc", f"{command} \\; exec {shlex.quote(shell)}"]
        return args

    if IS_WINDOWS:
        wt = shutil.which("wt.exe")
        if wt:
            if command:
                return [wt, "-d", path, "cmd", "/k", command]
            return [wt, "-d", path]
        return None

    shell = os.environ.get("SHELL", "/bin/sh")
    inner = f"{script}; exec {shlex.quote(shell)}" if command else None
    for name, run_flag in _LINUX_TERMINALS:
        exe = shutil.which(name)
        if not exe:
            continue
        if inner is None:
            return [exe]
        return [exe, *run_flag, shell, "-c", inner]
    return None


def open_terminal(path: str, command: str | None = None) -> bool:
    """Open a new terminal window at *path*, optionally running *command*."""
    args = terminal_launch_args(path, command)
    if args is None:
        logger.debug("No terminal emulator found")
        return False
    try:
        subprocess.Popen(
            args,
            cwd=path if os.path.isdir(path) else None,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        return True
    except OSError:
        logger.debug("Failed to launch terminal %s", args[0], exc_info=True)
        return False


def file_browser_args(path: str) -> list[str] | None:
    """Build the argv that reveals *path* in the desktop file browser."""
    if IS_MACOS:
        return ["open", path]
    if IS_WINDOWS:
        return ["explorer", path]
    if IS_WSL:
        if shutil.which("explorer.exe"):
            return ["explorer.exe", "."]
        return None
    if shutil.which("xdg-open"):
        return ["xdg-open", path]
    return None


def reveal_in_file_browser(path: str) -> bool:
    """Open *path* in Finder / Explorer / the XDG file manager."""
    args = file_browser_args(path)
    if args is None:
        return False
    try:
        subprocess.Popen(
            args,
            cwd=path if IS_WSL else None,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        return True
    except OSError:
        logger.debug("Failed to open file browser for %s", path, exc_info=True)
        return False


# ---------------------------------------------------------------------------
# Clipboard
# ---------------------------------------------------------------------------


def copy_to_clipboard(text: str) -> bool:
    """Copy *text* to the system clipboard using the best available method.

    Tries in order:
    1. OSC 52 terminal escape (works over SSH, in modern terminals)
    2. Platform-native clipboard tool
    """
    out = sys.__stdout__
    if out is not None:
        try:
            encoded = base64.b64encode(text.encode()).decode()
            out.write(f"\033]52;c;{encoded}\a")
            out.flush()
            return True
        except OSError:
            logger.debug("OSC 52 clipboard write failed", exc_info=True)

    if IS_WSL or IS_WINDOWS:
        return _clip_exe(text, utf16=IS_WSL)
    if IS_MACOS:
        return _run_clip(["pbcopy"], text)
    for cmd in (
        ["wl-copy"],
        ["xclip", "-selection", "clipboard"],
        ["xsel", "--clipboard", "--input"],
    ):
        if shutil.which(cmd[0]) and _run_clip(cmd, text):
            return True
    return False


def _clip_exe(text: str, *, utf16: bool) -> bool:
    """Windows / WSL: pipe into clip.exe (UTF-16LE under WSL)."""
    if not shutil.which("clip.exe"):
        return False
    data = text.encode("utf-16-le") if utf16 else text.encode()
    return _run_clip(["clip.exe"], text, data=data)


def _run_clip(cmd: list[str], text: str, data: bytes | None = None) -> bool:
    try:
        subprocess.run(
            cmd,
            input=data if data is not None else text.encode(),
            check=True,
            timeout=2,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        return True
    except (subprocess.SubprocessError, OSError):
        logger.debug("Clipboard via %s failed", cmd[0], exc_info=True)
        return False
