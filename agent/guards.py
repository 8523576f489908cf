"""
DevPilot Agent - Trust Boundary Guards
========================================
The two predicates every tool invocation passes through:

    resolve_path       - PathGuard: map a caller-supplied relative path to
                         an absolute path inside the project root, or refuse.
    is_command_allowed - CommandGuard: decide whether a command string is
                         admitted by the project's allowlist.

Path containment:
    The check is purely lexical (os.path.join + os.path.normpath) so it
    works for files that do not exist yet, e.g. patch "create" targets.
    Containment is decided by comparing path *segments*, never by a raw
    string prefix: "/srv/app-old/x" is not inside "/srv/app".

    Decoded spellings of the input are checked too.  A path such as
    "..%2f..%2fetc" is harmless to the filesystem on its own, but any
    layer that decodes it later would turn it into "../../etc", so it is
    refused up front.

    Residual risk: symbolic links inside a project root that point outside
    of it are followed by the operating system.  This module does not
    resolve links; operators must not place such links in project roots.

Command admission:
    "prefix" mode (default) keeps the historical semantics: a command is
    admitted when it starts with any allowlist entry as a literal string.
    Note that "npm" therefore also admits "npmfoo".  "token" mode compares
    whitespace-delimited words instead and can be enabled per deployment.
"""

import os
from urllib.parse import unquote

from agent.errors import PathTraversal


COMMAND_MATCH_MODES = ("prefix", "token")

# Upper bound on repeated percent-decoding ("%252e" -> "%2e" -> ".").
_MAX_DECODE_ROUNDS = 4


# =============================================================================
# PathGuard
# =============================================================================

def _segments(path: str) -> list[str]:
    """Split a normalized absolute path into its non-empty components."""
    return [part for part in path.split(os.sep) if part]


def is_within(root: str, candidate: str, allow_root: bool = False) -> bool:
    """
    Segment-wise containment test between two normalized absolute paths.

    Args:
        root:       Normalized absolute project root.
        candidate:  Normalized absolute path to test.
        allow_root: If True, ``candidate == root`` counts as contained.

    Returns:
        True if ``candidate`` lies inside ``root``.
    """
    root_parts = _segments(root)
    cand_parts = _segments(candidate)

    if cand_parts[: len(root_parts)] != root_parts:
        return False
    if len(cand_parts) == len(root_parts):
        return allow_root
    return True


def _decoded_variants(user_path: str) -> list[str]:
    """
    Return alternative spellings of ``user_path`` that a downstream layer
    could interpret differently: percent-decoded and backslash-separated.
    """
    variants = []

    decoded = user_path
    for _ in range(_MAX_DECODE_ROUNDS):
        step = unquote(decoded)
        if step == decoded:
            break
        decoded = step
    if decoded != user_path:
        variants.append(decoded)

    for value in (user_path, decoded):
        if "\\" in value:
            variants.append(value.replace("\\", "/"))

    return variants


def _join_normalized(root: str, user_path: str) -> str:
    return os.path.normpath(os.path.join(root, user_path))


def resolve_path(root: str, user_path: str, allow_root: bool = False) -> str:
    """
    Resolve a caller-supplied path against a project root.

    Args:
        root:       Absolute, normalized project root.
        user_path:  Path relative to the root, as sent by the controller.
        allow_root: Accept a path that resolves to the root itself
                    (used for directory listings).

    Returns:
        The normalized absolute target path.

    Raises:
        PathTraversal: If the path, or any decoded spelling of it, leaves
                       the root.
    """
    if user_path is None:
        user_path = ""
    if "\x00" in user_path:
        raise PathTraversal(f"path traversal not allowed: {user_path!r}")

    target = _join_normalized(root, user_path)
    if not is_within(root, target, allow_root=allow_root):
        raise PathTraversal(f"path traversal not allowed: {user_path}")

    for variant in _decoded_variants(user_path):
        if not is_within(root, _join_normalized(root, variant), allow_root=allow_root):
            raise PathTraversal(f"path traversal not allowed: {user_path}")

    return target


# =============================================================================
# CommandGuard
# =============================================================================

def is_command_allowed(
    allowlist: list[str] | tuple[str, ...],
    command: str,
    mode: str = "prefix",
) -> bool:
    """
    Decide whether ``command`` is admitted by ``allowlist``.

    Args:
        allowlist: Ordered allowlist entries of the project.
        command:   Raw command string from the controller.
        mode:      "prefix" (literal string prefix, default) or
                   "token" (leading whitespace-delimited words must match).

    Returns:
        True if at least one non-blank entry admits the command.
        An empty allowlist admits nothing.
    """
    if not command:
        return False

    if mode == "token":
        words = command.split()
        for entry in allowlist:
            entry_words = entry.split()
            if entry_words and words[: len(entry_words)] == entry_words:
                return True
        return False

    for entry in allowlist:
        # A blank entry would be a prefix of every command.
        if entry.strip() and command.startswith(entry):
            return True
    return False
