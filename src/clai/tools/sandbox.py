"""
clai Path Sandbox

Decides whether a path handed over by the model may be touched, and
whether touching it needs explicit user approval. Rules are evaluated
in order and the first match wins:

1. Textual containment: the normalized path must stay inside the
   working directory.
2. Symlink containment: the path with symlinks resolved (existing
   ancestors included) must also stay inside it.
3. Hard denials: system roots, secret directories in the home
   directory, .git/config and private key files. Never approvable.
4. Sensitive files (.env, tokens, credentials...): allowed, but only
   after the user approves.
5. node_modules is denied.
6. Everything else is allowed.

The sandbox is a pure predicate. It never reads file contents.
"""

from __future__ import annotations

import os
import re

from clai.core.models import SandboxDecision

MAX_FILE_SIZE = 500 * 1024

BLOCKED_SYSTEM_PATHS = (
    "/etc", "/root", "/var", "/sys", "/proc", "/boot", "/usr", "/sbin",
    "/bin", "/lib", "/lib64", "/opt", "/dev", "/run", "/tmp", "/snap",
    "/mnt", "/media",
    # macOS
    "/System", "/Library", "/Applications", "/Volumes",
    "/private/etc", "/private/var",
)

BLOCKED_HOME_DIRS = (
    ".ssh", ".gnupg", ".gpg", ".aws", ".azure", ".gcloud", ".docker",
    ".kube", ".config/gcloud", ".config/gh", ".password-store",
    ".local/share/keyrings", ".bashrc", ".zshrc", ".profile",
)

BLOCKED_PATTERNS = tuple(
    re.compile(p)
    for p in (
        r"\.pem$",
        r"\.p12$",
        r"\.ppk$",
        r"id_rsa",
        r"id_ed25519",
        r"id_ecdsa",
        r"id_dsa",
    )
)

SENSITIVE_PATTERNS = tuple(
    re.compile(p, flags)
    for p, flags in (
        (r"\.env($|\.)", 0),
        (r"\.key$", 0),
        (r"credentials", re.IGNORECASE),
        (r"secrets?\.ya?ml$", re.IGNORECASE),
        (r"\.npmrc$", 0),
        (r"\.netrc$", 0),
        (r"\.git-credentials$", 0),
        (r"auth.*\.json$", re.IGNORECASE),
        (r"token", re.IGNORECASE),
        (r"password", re.IGNORECASE),
        (r"api[_-]?key", re.IGNORECASE),
    )
)

_GIT_CONFIG = re.compile(r"(^|/)\.git/config$")


def _is_within(path: str, root: str) -> bool:
    if path == root:
        return True
    prefix = root if root.endswith(os.sep) else root + os.sep
    return path.startswith(prefix)


class PathSandbox:
    """Path policy bound to one working directory.

    The working directory is captured at construction and never changes
    for the lifetime of the sandbox.
    """

    def __init__(self, working_directory: str | None = None, home: str | None = None):
        root = os.path.normpath(os.path.abspath(working_directory or os.getcwd()))
        self._root = root
        self._real_root = os.path.realpath(root)

        if home is None:
            home = os.path.expanduser("~")
            if home == "~":
                home = ""
        self._home = os.path.normpath(home) if home else ""

    @property
    def working_directory(self) -> str:
        return self._root

    def resolve(self, path: str) -> str:
        """Absolute, normalized form of a path relative to the working directory."""
        return os.path.normpath(os.path.join(self._root, path))

    def relative(self, path: str) -> str:
        """Display form of a path, relative to the working directory."""
        return os.path.relpath(self.resolve(path), self._root)

    def is_descendant(self, path: str) -> bool:
        """True if the path lies strictly below the working directory."""
        absolute = self.resolve(path)
        return absolute != self._root and _is_within(absolute, self._root)

    def decide(self, path: str) -> SandboxDecision:
        absolute = self.resolve(path)
        rel = os.path.relpath(absolute, self._root)

        if rel == os.pardir or rel.startswith(os.pardir + os.sep) or not _is_within(absolute, self._root):
            return SandboxDecision(
                allowed=False,
                reason="Access denied: path is outside working directory",
            )

        try:
            real = os.path.realpath(absolute)
        except OSError:
            real = None
        if real is not None and not _is_within(real, self._real_root):
            return SandboxDecision(
                allowed=False,
                reason="Access denied: path resolves outside working directory",
            )

        for blocked in BLOCKED_SYSTEM_PATHS:
            if _is_within(absolute, blocked) and not _is_within(self._root, blocked):
                return SandboxDecision(allowed=False, reason="Access denied: system directory")

        if self._home:
            for entry in BLOCKED_HOME_DIRS:
                blocked = os.path.join(self._home, entry)
                if _is_within(absolute, blocked) and not _is_within(self._root, blocked):
                    return SandboxDecision(allowed=False, reason="Access denied: sensitive directory")

        rel_posix = rel.replace(os.sep, "/")
        name = os.path.basename(absolute)

        if _GIT_CONFIG.search(rel_posix):
            return SandboxDecision(allowed=False, reason="Access denied: sensitive directory")

        for pattern in BLOCKED_PATTERNS:
            if pattern.search(name) or pattern.search(rel_posix):
                return SandboxDecision(allowed=False, reason="Access denied: critical security file")

        for pattern in SENSITIVE_PATTERNS:
            if pattern.search(name) or pattern.search(rel_posix):
                return SandboxDecision(
                    allowed=True,
                    requires_approval=True,
                    reason="Warning: sensitive file detected",
                )

        if "node_modules" in rel_posix.split("/"):
            return SandboxDecision(allowed=False, reason="Access denied: node_modules directory")

        return SandboxDecision(allowed=True)

    def check_size(self, path: str) -> SandboxDecision:
        """Deny files larger than MAX_FILE_SIZE. Stat failures are left to the real read."""
        try:
            size = os.stat(self.resolve(path)).st_size
        except OSError:
            return SandboxDecision(allowed=True)
        if size > MAX_FILE_SIZE:
            size_kb = (size + 512) // 1024
            return SandboxDecision(
                allowed=False,
                reason=f"File too large: {size_kb}KB (max {MAX_FILE_SIZE // 1024}KB)",
            )
        return SandboxDecision(allowed=True)
