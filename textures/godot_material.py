"""Build a Godot ``StandardMaterial3D`` (.tres) from freshly converted textures.

Godot writes a ``<texture>.<ext>.import`` file next to every image it picks up.
Those sidecars carry the two things a material needs to reference a texture:
the resource UID and its ``res://`` path.  Godot only writes them once the
editor window has focus and its background scan has run, so :func:`generate`
waits for them before reading anything.

Texture roles are guessed from file names, e.g. ``wall_albedo.png`` or
``wall_normal.png``.  Supported hints, in priority order:

* albedo
* normal
* height
* roughness
* metallic
* _ao (ambient occlusion)
"""

from __future__ import annotations

import random
import re
import string
import sys
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from poll_utils import poll_until

LogFn = Callable[[str], None]
TokenFn = Callable[[int], str]

IMPORT_SUFFIX = ".import"
HEADER_UID_LENGTH = 12
SHORT_REF_LENGTH = 5

RE_UID = re.compile(r'\buid="uid://([^"]+)"')
RE_SOURCE_FILE = re.compile(r'\bsource_file="(res://[^"]+)"')


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class MaterialError(Exception):
    """Base class for failures that abort material generation."""


class IncompleteImportSet(MaterialError):
    def __init__(self, found: int, expected: int):
        self.found = found
        self.expected = expected
        super().__init__(
            f"Will not wait any longer for .import files ({found} of {expected} found). "
            "Make the Godot window active so it imports the converted files, then run again."
        )


class IncompleteMapping(MaterialError):
    def __init__(self, unresolved: Sequence[Path], expected: int):
        self.unresolved = list(unresolved)
        self.expected = expected
        names = ", ".join(p.name for p in self.unresolved)
        super().__init__(
            f"UID mapping does not match number of files "
            f"({expected - len(self.unresolved)} of {expected}). Unresolved: {names}"
        )


class MissingExtension(MaterialError):
    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Cannot derive .import file for '{path}': it has no extension.")


class SidecarReadError(MaterialError):
    def __init__(self, path: Path, reason: Exception):
        self.path = path
        super().__init__(f"Failed to read import file '{path}': {reason}")


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class Role(Enum):
    ALBEDO = "albedo"
    NORMAL = "normal"
    HEIGHT = "height"
    ROUGHNESS = "roughness"
    METALLIC = "metallic"
    AMBIENT_OCCLUSION = "ao"


# First match wins, so the order matters.  Ambient occlusion wants the
# underscore so names like "chaos" don't qualify.
ROLE_HINTS: List[Tuple[str, Role]] = [
    ("albedo", Role.ALBEDO),
    ("normal", Role.NORMAL),
    ("height", Role.HEIGHT),
    ("roughness", Role.ROUGHNESS),
    ("metallic", Role.METALLIC),
    ("_ao", Role.AMBIENT_OCCLUSION),
]

# Extra lines emitted before the texture reference of each role.
ROLE_FLAGS = {
    Role.ALBEDO: [],
    Role.NORMAL: ["normal_enabled = true"],
    Role.HEIGHT: ["heightmap_enabled = true"],
    Role.ROUGHNESS: [],
    Role.METALLIC: ["metallic = 1.0"],
    Role.AMBIENT_OCCLUSION: ["ao_enabled = true"],
}

ROLE_PROPERTIES = {
    Role.ALBEDO: "albedo_texture",
    Role.NORMAL: "normal_texture",
    Role.HEIGHT: "heightmap_texture",
    Role.ROUGHNESS: "roughness_texture",
    Role.METALLIC: "metallic_texture",
    Role.AMBIENT_OCCLUSION: "ao_texture",
}


def classify_role(name: str) -> Optional[Role]:
    """Return the texture role hinted at by a file name, or ``None``."""
    for hint, role in ROLE_HINTS:
        if hint in name:
            return role
    return None


# ---------------------------------------------------------------------------
# Sidecar discovery & parsing
# ---------------------------------------------------------------------------


def random_token(length: int) -> str:
    """Godot-like lowercase alphanumeric identifier."""
    alphabet = string.ascii_letters + string.digits
    return "".join(random.choices(alphabet, k=length)).lower()


def sidecar_path(path: Path) -> Path:
    if not path.suffix:
        raise MissingExtension(path)
    return path.with_name(path.name + IMPORT_SUFFIX)


def _print_progress(message: str) -> None:
    sys.stdout.write(message)
    sys.stdout.flush()


def find_sidecars(
    files: Sequence[Path],
    *,
    exists: Callable[[Path], bool] = Path.exists,
    max_attempts: int = 100,
    interval: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    notify: Optional[LogFn] = _print_progress,
    cancelled: Optional[Callable[[], bool]] = None,
) -> List[Path]:
    """Wait until every file in ``files`` has its ``.import`` sidecar.

    Returns the sidecars in input order.  Raises :class:`IncompleteImportSet`
    when some are still missing after ``max_attempts`` polls.
    """

    expected = [sidecar_path(p) for p in files]

    def scan() -> List[Path]:
        return [p for p in expected if exists(p)]

    waits: List[int] = []

    def on_wait(attempt: int) -> None:
        waits.append(attempt)
        if not notify:
            return
        if attempt == 0:
            notify(
                "Waiting for .import files. "
                "Make Godot window active. This will prompt it to create the .import files: ."
            )
        else:
            notify(".")

    found = poll_until(
        scan,
        lambda res: len(res) == len(expected),
        max_attempts=max_attempts,
        interval=interval,
        sleep=sleep,
        on_wait=on_wait,
        cancelled=cancelled,
    )
    if waits and notify:
        notify("\n")

    if len(found) < len(expected):
        raise IncompleteImportSet(len(found), len(expected))
    return found


def parse_sidecar_text(text: str) -> Tuple[Optional[str], Optional[str]]:
    """Pull ``(uid, source_file)`` out of .import text; later lines win."""
    uid = None
    source_file = None
    for line in text.splitlines():
        if m := RE_UID.search(line):
            uid = m.group(1)
        if m := RE_SOURCE_FILE.search(line):
            source_file = m.group(1)
    return uid, source_file


def read_sidecar(path: Path) -> Tuple[Optional[str], Optional[str]]:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SidecarReadError(path, exc) from exc
    return parse_sidecar_text(text)


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MaterialMapping:
    original_path: Path
    uid: str
    short_ref: str
    source_file: str
    role: Role


def _original_of(sidecar: Path) -> Path:
    return sidecar.with_name(sidecar.name[: -len(IMPORT_SUFFIX)])


def compile_mapping(
    sidecars: Sequence[Path],
    *,
    token: TokenFn = random_token,
    logger: Optional[LogFn] = None,
) -> List[MaterialMapping]:
    """Turn discovered sidecars into ordered mappings.

    Every sidecar must resolve to a uid, a source path and a role; otherwise
    :class:`IncompleteMapping` is raised and nothing is returned.
    """

    def _log(message: str) -> None:
        if logger:
            logger(message)

    mapping: List[MaterialMapping] = []
    unresolved: List[Path] = []
    for sidecar in sidecars:
        original = _original_of(sidecar)
        uid, source_file = read_sidecar(sidecar)
        role = classify_role(original.name)

        if uid is None or source_file is None:
            _log(f"[WARN] {sidecar.name}: missing uid or source_file.")
            unresolved.append(original)
            continue
        if role is None:
            _log(f"[WARN] {original.name}: no texture role hint in file name.")
            unresolved.append(original)
            continue

        short_ref = f"{len(mapping) + 1}_{token(SHORT_REF_LENGTH)}"
        mapping.append(MaterialMapping(original, uid, short_ref, source_file, role))

    if len(mapping) != len(sidecars):
        raise IncompleteMapping(unresolved, len(sidecars))
    return mapping


# ---------------------------------------------------------------------------
# .tres rendering
# ---------------------------------------------------------------------------


def make_header(token: TokenFn = random_token) -> str:
    return (
        f'[gd_resource type="StandardMaterial3D" format=3 '
        f'uid="uid://{token(HEADER_UID_LENGTH)}"]\n\n'
    )


def make_ext_resources(mapping: Sequence[MaterialMapping]) -> str:
    return "".join(
        f'[ext_resource type="Texture2D" path="{m.source_file}" '
        f'uid="uid://{m.uid}" id="{m.short_ref}"]\n'
        for m in mapping
    )


def make_resource_block(mapping: Sequence[MaterialMapping]) -> str:
    lines = ["\n[resource]"]
    for m in mapping:
        lines.extend(ROLE_FLAGS[m.role])
        lines.append(f'{ROLE_PROPERTIES[m.role]} = ExtResource("{m.short_ref}")')
    return "\n".join(lines)


def render_material(mapping: Sequence[MaterialMapping], token: TokenFn = random_token) -> str:
    return make_header(token) + make_ext_resources(mapping) + make_resource_block(mapping)


def generate(
    files: Sequence[Path],
    *,
    token: TokenFn = random_token,
    logger: Optional[LogFn] = None,
    **scan_kwargs,
) -> str:
    """Return the .tres text for ``files`` (converted images).

    ``scan_kwargs`` are forwarded to :func:`find_sidecars`.  Any
    :class:`MaterialError` means no material should be written.
    """

    sidecars = find_sidecars(files, **scan_kwargs)
    mapping = compile_mapping(sidecars, token=token, logger=logger)
    return render_material(mapping, token)
