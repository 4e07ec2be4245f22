#!/usr/bin/env python3
"""Batch image converter with optional Godot material generation.

Converts every file in a directory whose name matches a shell-style pattern
(``*.tif``, ``wall_*.jpg``...) into another format.  With ``--material`` it
then waits for Godot to import the new files and writes a
``StandardMaterial3D`` referencing them, see :mod:`godot_material`.

Usage:
    python img2godot.py "*.tif"
    python img2godot.py "rock_*.tif" --dest textures/rock --material
    python img2godot.py "*.tif" --config convert_config.json --preview

Settings may also come from a JSON file (``--config``); flags win over it.
"""

from __future__ import annotations

import argparse
import fnmatch
import json
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Callable, List, Optional

from convert_utils import ConversionError, convert_image, normalise_format, target_path
from godot_material import MaterialError, generate

# ---------------------------------------------------------------------------
# Configuration dataclasses and JSON loader
# ---------------------------------------------------------------------------


@dataclass
class MaterialSettings:
    enabled: bool = False
    filename: str = "material.tres"
    max_attempts: int = 100
    interval: float = 1.0


@dataclass
class ConvertConfig:
    source_dir: Path = Path(".")
    dest_dir: Optional[Path] = None
    output_format: str = "png"
    allow_overwrites: bool = False
    preview: bool = False
    delete_originals: bool = False
    assume_yes: bool = False
    material: MaterialSettings = field(default_factory=MaterialSettings)

    @classmethod
    def from_json(cls, path: str | Path) -> "ConvertConfig":
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)

        def pick(d: dict, dc_type):
            if not isinstance(d, dict):
                return {}
            allowed = {f.name for f in fields(dc_type)}
            return {k: v for k, v in d.items() if k in allowed}

        if "output_ext" in raw:
            raw["output_format"] = raw["output_ext"].strip(".")

        material = MaterialSettings(**pick(raw.get("material", {}), MaterialSettings))

        top = pick(raw, ConvertConfig)
        for key in ("source_dir", "dest_dir"):
            if raw.get(key) is not None:
                top[key] = Path(raw[key])

        top["material"] = material
        return ConvertConfig(**top)


# ---------------------------------------------------------------------------
# File selection
# ---------------------------------------------------------------------------


def collect_files(source_dir: Path, pattern: str) -> List[Path]:
    """Regular files directly in ``source_dir`` whose name matches ``pattern``."""

    return sorted(
        p for p in source_dir.iterdir()
        if p.is_file() and fnmatch.fnmatchcase(p.name, pattern)
    )


def confirm(question: str, ask: Callable[[str], str] = input) -> bool:
    try:
        answer = ask(f"{question} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


# ---------------------------------------------------------------------------
# Conversion run
# ---------------------------------------------------------------------------


def convert_files(cfg: ConvertConfig, files: List[Path]) -> List[Path]:
    """Convert ``files`` and return the paths that were written."""

    converted: List[Path] = []
    for src in files:
        dst = target_path(src, cfg.output_format, cfg.dest_dir)

        if dst.resolve() == src.resolve():
            print(f"SKIP -> {src.name}: already {cfg.output_format}.")
            continue
        if dst.exists() and not cfg.allow_overwrites:
            print(f"File exists: {dst.name}")
            continue
        if cfg.preview:
            print(f"[PREVIEW] {src.name} -> {dst}")
            continue

        try:
            convert_image(src, dst)
        except ConversionError as exc:
            print(f"FAIL: {exc}")
            continue
        print(f"OK  -> {dst.name}")
        converted.append(dst)
    return converted


def write_material(cfg: ConvertConfig, converted: List[Path], base_dir: Path, **scan_kwargs) -> Optional[Path]:
    """Generate and save the material; returns its path or ``None`` on failure."""

    mat_path = base_dir / cfg.material.filename
    if mat_path.exists() and not cfg.allow_overwrites:
        print(f"[ERROR] File exists: {mat_path.name}. Use --allow-overwrites to replace it.")
        return None

    try:
        data = generate(
            converted,
            logger=print,
            max_attempts=cfg.material.max_attempts,
            interval=cfg.material.interval,
            **scan_kwargs,
        )
    except MaterialError as exc:
        print(f"[ERROR] {exc}")
        return None

    try:
        mat_path.write_text(data, encoding="utf-8")
    except OSError as exc:
        print(f"[ERROR] Failed to write material {mat_path}: {exc}")
        return None
    print(f"[DONE] Wrote material {mat_path}")
    return mat_path


def delete_originals(cfg: ConvertConfig, files: List[Path], ask: Callable[[str], str] = input) -> int:
    if not files:
        return 0
    if not cfg.assume_yes and not confirm(f"Delete {len(files)} original file(s)?", ask):
        print("[INFO] Keeping original files.")
        return 0
    removed = 0
    for src in files:
        try:
            src.unlink()
            removed += 1
        except OSError as exc:
            print(f"[WARN] Could not delete {src.name}: {exc}")
    print(f"[INFO] Deleted {removed} original file(s).")
    return removed


def run(cfg: ConvertConfig, pattern: str, ask: Callable[[str], str] = input, **scan_kwargs) -> int:
    files = collect_files(cfg.source_dir, pattern)
    if not files:
        print("[WARN] File list is empty. Review the search pattern and make sure you're in the right directory.")
        return 1

    if cfg.dest_dir and not cfg.preview:
        cfg.dest_dir.mkdir(parents=True, exist_ok=True)

    converted = convert_files(cfg, files)

    if cfg.preview:
        if cfg.material.enabled:
            print(f"[PREVIEW] Would generate {cfg.material.filename} after Godot imports the files.")
        print("[INFO] Preview complete. No files were written.")
        return 0

    print(f"[INFO] Converted {len(converted)} of {len(files)} file(s).")

    rc = 0
    if cfg.material.enabled:
        if not converted:
            print("[ERROR] Nothing was converted; skipping material generation.")
            rc = 1
        elif write_material(cfg, converted, cfg.dest_dir or cfg.source_dir, **scan_kwargs) is None:
            rc = 1

    if cfg.delete_originals:
        sources = [p for p in files if target_path(p, cfg.output_format, cfg.dest_dir) in converted]
        delete_originals(cfg, sources, ask)

    return rc


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Batch image converter with Godot material generation")
    ap.add_argument("pattern", help="Filename pattern, for example: *.tif")
    ap.add_argument("--config", help="Path to a JSON config file")
    ap.add_argument("--source", help="Directory to read images from (default: current directory)")
    ap.add_argument("--dest", help="Directory to write converted images to (default: beside the originals)")
    ap.add_argument("--format", help="Output format, for example: png")
    ap.add_argument("--allow-overwrites", action="store_true", help="Replace existing output files")
    ap.add_argument("--material", action="store_true", help="Generate a Godot material after conversion")
    ap.add_argument("--material-name", metavar="NAME", help="Material file name (default: material.tres)")
    ap.add_argument("--timeout", type=int, help="Seconds to wait for Godot .import files")
    ap.add_argument("--preview", action="store_true", help="Show what would happen without writing files")
    ap.add_argument("--delete-originals", action="store_true", help="Delete sources after conversion")
    ap.add_argument("--yes", action="store_true", help="Do not ask before deleting")
    args = ap.parse_args(argv)

    cfg = ConvertConfig.from_json(args.config) if args.config else ConvertConfig()
    if args.source:
        cfg.source_dir = Path(args.source)
    if args.dest:
        cfg.dest_dir = Path(args.dest)
    if args.format:
        cfg.output_format = args.format
    try:
        cfg.output_format = normalise_format(cfg.output_format)
    except ValueError as exc:
        raise SystemExit(str(exc))
    if args.material:
        cfg.material.enabled = True
    if args.material_name:
        cfg.material.filename = args.material_name
    if args.timeout is not None and cfg.material.interval > 0:
        cfg.material.max_attempts = max(1, round(args.timeout / cfg.material.interval))
    cfg.allow_overwrites |= args.allow_overwrites
    cfg.preview |= args.preview
    cfg.delete_originals |= args.delete_originals
    cfg.assume_yes |= args.yes

    if not cfg.source_dir.is_dir():
        raise SystemExit(f"Source directory not found: {cfg.source_dir}")

    try:
        return run(cfg, args.pattern)
    except KeyboardInterrupt:
        print("\n[INFO] Interrupted.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
