#!/usr/bin/env python3
"""
Convert a binary font into an Elm module embedding its glyph and layout data.
Uses fontTools to read the font and writes <FontName>.elm.

Usage:
    uv run python convert_font.py <FontName|font.otf> [output_dir]

    A bare font name is resolved to <FontName>.otf in the current directory.
    A path ending in a font suffix is used as is; its stem is the font name.

Outputs:
    output_dir/<FontName>.elm  - Elm module exposing `font : Font`
"""

import json
import re
import sys
from dataclasses import dataclass
from pathlib import Path

import yaml

from fontTools.pens.basePen import BasePen
from fontTools.ttLib import TTFont, TTLibError

FONT_SUFFIXES = (".otf", ".ttf", ".woff", ".woff2")
ELM_MODULE_NAME_RE = re.compile(r"[A-Z][A-Za-z0-9_]*")

MODULE_TEMPLATE = '''module {module_name} exposing (font)

import {font_module} as {font_alias} exposing ({font_type})
import {decoder_module} as {decoder_alias}


font : {font_type}
font =
    """
{data}
"""
    |> {decoder_alias}.decodeString {decode_function}
    |> Result.withDefault {fallback}
'''


class ConversionError(Exception):
    """Base class for errors that abort a conversion."""


class FontLoadError(ConversionError):
    """The input font is missing or cannot be parsed."""


class ExtractionError(ConversionError):
    """A table required for extraction is missing from the font."""


class EmitError(ConversionError):
    """The Elm module cannot be generated or written."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GlyphRecord:
    path: str
    advance_width: int
    left_side_bearing: int

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "advanceWidth": self.advance_width,
            "leftSideBearing": self.left_side_bearing,
        }


@dataclass(frozen=True)
class FontMetrics:
    ascender: int
    descender: int
    x_height: int | None
    cap_height: int | None
    units_per_em: int


@dataclass(frozen=True)
class LigatureRule:
    sub: tuple[int, ...]
    by: int

    def to_dict(self) -> dict:
        return {"sub": list(self.sub), "by": self.by}


@dataclass(frozen=True)
class KerningPair:
    left: int
    right: int
    value: int

    def to_dict(self) -> dict:
        return {"left": self.left, "right": self.right, "value": self.value}


@dataclass(frozen=True)
class KerningSubtable:
    pairs: tuple[KerningPair, ...]


@dataclass(frozen=True)
class KerningTable:
    subtables: tuple[KerningSubtable, ...]


@dataclass(frozen=True)
class FontPackage:
    """Everything the Elm decoder needs to rebuild the font."""

    cmap: dict[int, int]
    glyphs: list[GlyphRecord]
    metrics: FontMetrics
    ligatures: list[LigatureRule]
    kerning: list[KerningPair]

    def to_dict(self) -> dict:
        """Return the JSON shape read by `Font.decodeFont`.

        x-height and cap-height are left out when the font does not
        define them.
        """
        data = {
            "cmap": {str(codepoint): index for codepoint, index in self.cmap.items()},
            "glyphs": [glyph.to_dict() for glyph in self.glyphs],
            "ascender": self.metrics.ascender,
            "descender": self.metrics.descender,
        }
        if self.metrics.x_height is not None:
            data["xHeight"] = self.metrics.x_height
        if self.metrics.cap_height is not None:
            data["capHeight"] = self.metrics.cap_height
        data["unitsPerEm"] = self.metrics.units_per_em
        data["ligatures"] = [rule.to_dict() for rule in self.ligatures]
        data["kerning"] = [pair.to_dict() for pair in self.kerning]
        return data


@dataclass(frozen=True)
class ElmTarget:
    """Names used by the generated Elm module."""

    extension: str
    font_module: str
    font_alias: str
    font_type: str
    decoder_module: str
    decoder_alias: str
    decode_function: str
    fallback: str


def load_target_config(path: Path | None = None) -> ElmTarget:
    """Load Elm target settings from YAML (defaults to elm_target.yaml)."""
    if path is None:
        path = Path(__file__).parent / "elm_target.yaml"
    with open(path) as f:
        data = yaml.safe_load(f)
    try:
        return ElmTarget(**data)
    except TypeError as e:
        raise ConversionError(f"Invalid target config {path}: {e}") from e


# ---------------------------------------------------------------------------
# Outlines
# ---------------------------------------------------------------------------

def format_number(value) -> str:
    """Format a coordinate: integers as is, otherwise at most two decimals."""
    value = round(value, 2)
    if value == int(value):
        return str(int(value))
    return f"{value:.2f}".rstrip("0")


def _format_points(*points) -> str:
    # A minus sign separates numbers on its own, so no space goes before it
    text = ""
    for value in (format_number(v) for point in points for v in point):
        if text and not value.startswith("-"):
            text += " "
        text += value
    return text


class PathDataPen(BasePen):
    """Record a glyph outline as SVG path data in font units (y up).

    Quadratic segments are kept as `Q`, cubic ones as `C`. Components are
    decomposed through the glyph set.
    """

    def __init__(self, glyphSet=None):
        super().__init__(glyphSet)
        self._commands = []

    def _moveTo(self, pt):
        self._commands.append("M" + _format_points(pt))

    def _lineTo(self, pt):
        self._commands.append("L" + _format_points(pt))

    def _qCurveToOne(self, pt1, pt2):
        self._commands.append("Q" + _format_points(pt1, pt2))

    def _curveToOne(self, pt1, pt2, pt3):
        self._commands.append("C" + _format_points(pt1, pt2, pt3))

    def _closePath(self):
        self._commands.append("Z")

    def getPathData(self) -> str:
        return "".join(self._commands)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def load_font(path: Path) -> TTFont:
    """Open a font file, raising FontLoadError if it is missing or unreadable."""
    path = Path(path)
    if not path.exists():
        raise FontLoadError(f"Font file not found: {path}")
    try:
        return TTFont(str(path))
    except (TTLibError, OSError) as e:
        raise FontLoadError(f"Cannot read font {path}: {e}") from e


def _require_table(font: TTFont, tag: str):
    if tag not in font:
        raise ExtractionError(f"Font has no '{tag}' table")
    return font[tag]


def extract_glyphs(font: TTFont) -> list[GlyphRecord]:
    """
    Extract one record per glyph, in glyph index order.

    The outline is drawn through PathDataPen; advance width and
    left-side-bearing come from the hmtx table. Every glyph is kept,
    .notdef included.
    """
    hmtx = _require_table(font, "hmtx")
    glyph_set = font.getGlyphSet()

    records = []
    for glyph_name in font.getGlyphOrder():
        pen = PathDataPen(glyph_set)
        glyph_set[glyph_name].draw(pen)
        advance_width, lsb = hmtx[glyph_name]
        records.append(GlyphRecord(
            path=pen.getPathData(),
            advance_width=advance_width,
            left_side_bearing=lsb,
        ))
    return records


def extract_metrics(font: TTFont) -> FontMetrics:
    """Read vertical metrics and units-per-em, passed through unchanged."""
    hhea = _require_table(font, "hhea")
    os2 = _require_table(font, "OS/2")
    head = _require_table(font, "head")

    # sxHeight and sCapHeight only exist from OS/2 version 2 on
    has_heights = os2.version >= 2
    return FontMetrics(
        ascender=hhea.ascent,
        descender=hhea.descent,
        x_height=os2.sxHeight if has_heights else None,
        cap_height=os2.sCapHeight if has_heights else None,
        units_per_em=head.unitsPerEm,
    )


def extract_cmap(font: TTFont) -> dict[int, int]:
    """Map Unicode code points to glyph indices, ordered by code point."""
    _require_table(font, "cmap")
    best_cmap = font.getBestCmap() or {}
    return {
        codepoint: font.getGlyphID(glyph_name)
        for codepoint, glyph_name in sorted(best_cmap.items())
    }


def _feature_lookups(
    font: TTFont,
    table_tag: str,
    feature_tag: str,
    lookup_type: int,
    script_tag: str = "DFLT",
) -> list[list]:
    """
    Collect the subtables of every lookup a feature uses, one list per lookup.

    Lookups come from the script's default language system, in the order
    the matching features list them. Extension subtables are unwrapped and
    only subtables of `lookup_type` are kept.
    """
    if table_tag not in font:
        return []
    table = font[table_tag].table
    if not (table.ScriptList and table.FeatureList and table.LookupList):
        return []

    script = next(
        (r.Script for r in table.ScriptList.ScriptRecord if r.ScriptTag == script_tag),
        None,
    )
    if script is None or script.DefaultLangSys is None:
        return []

    lookups = []
    for feature_index in script.DefaultLangSys.FeatureIndex:
        record = table.FeatureList.FeatureRecord[feature_index]
        if record.FeatureTag != feature_tag:
            continue
        for lookup_index in record.Feature.LookupListIndex:
            lookup = table.LookupList.Lookup[lookup_index]
            subtables = []
            for subtable in lookup.SubTable:
                real_st = getattr(subtable, "ExtSubTable", subtable)
                if getattr(real_st, "LookupType", lookup.LookupType) == lookup_type:
                    subtables.append(real_st)
            if subtables:
                lookups.append(subtables)
    return lookups


def extract_ligatures(font: TTFont, feature_tag: str = "liga") -> list[LigatureRule]:
    """Return the ligature substitutions registered for `feature_tag`."""
    rules = []
    for subtables in _feature_lookups(font, "GSUB", feature_tag, 4):
        for subtable in subtables:
            first_glyphs = sorted(subtable.ligatures, key=font.getGlyphID)
            for first in first_glyphs:
                for ligature in subtable.ligatures[first]:
                    sequence = [first] + list(ligature.Component)
                    rules.append(LigatureRule(
                        sub=tuple(font.getGlyphID(g) for g in sequence),
                        by=font.getGlyphID(ligature.LigGlyph),
                    ))
    return rules


def _x_advance(value_record) -> int:
    return getattr(value_record, "XAdvance", None) or 0


def _pair_pos_glyph_pairs(font: TTFont, subtable) -> list[KerningPair]:
    """Kerning pairs of a format 1 PairPos subtable, every record kept."""
    pairs = []
    for first, pair_set in zip(subtable.Coverage.glyphs, subtable.PairSet):
        left = font.getGlyphID(first)
        for record in pair_set.PairValueRecord:
            pairs.append(KerningPair(
                left=left,
                right=font.getGlyphID(record.SecondGlyph),
                value=_x_advance(record.Value1),
            ))
    return pairs


def _pair_pos_class_pairs(font: TTFont, subtable) -> list[KerningPair]:
    """Expand a format 2 (class based) PairPos subtable into glyph pairs.

    Class 0 of the second class definition holds every glyph it does not
    list. Zero adjustments are dropped.
    """
    class_defs1 = subtable.ClassDef1.classDefs if subtable.ClassDef1 else {}
    class_defs2 = subtable.ClassDef2.classDefs if subtable.ClassDef2 else {}

    right_glyphs = {}
    for glyph_id, glyph_name in enumerate(font.getGlyphOrder()):
        right_glyphs.setdefault(class_defs2.get(glyph_name, 0), []).append(glyph_id)

    pairs = []
    for first in subtable.Coverage.glyphs:
        left = font.getGlyphID(first)
        class1_record = subtable.Class1Record[class_defs1.get(first, 0)]
        for class2, class2_record in enumerate(class1_record.Class2Record):
            value = _x_advance(class2_record.Value1)
            if not value:
                continue
            for right in right_glyphs.get(class2, []):
                pairs.append(KerningPair(left=left, right=right, value=value))
    return pairs


def _legacy_kerning_tables(font: TTFont) -> list[KerningTable]:
    """Read format 0 subtables of an old-style 'kern' table as one table."""
    if "kern" not in font:
        return []
    subtables = []
    for kern_subtable in font["kern"].kernTables:
        if getattr(kern_subtable, "format", None) != 0:
            continue
        pairs = sorted(
            (font.getGlyphID(left), font.getGlyphID(right), value)
            for (left, right), value in kern_subtable.kernTable.items()
        )
        subtables.append(KerningSubtable(
            pairs=tuple(KerningPair(left, right, value) for left, right, value in pairs)
        ))
    if not subtables:
        return []
    return [KerningTable(subtables=tuple(subtables))]


def extract_kerning_tables(font: TTFont) -> list[KerningTable]:
    """
    Read kerning as tables of subtables.

    Each GPOS pair adjustment lookup of the 'kern' feature is one table.
    Fonts without such lookups fall back to the legacy 'kern' table.
    """
    tables = []
    for subtables in _feature_lookups(font, "GPOS", "kern", 2):
        kerning_subtables = []
        for subtable in subtables:
            if subtable.Format == 1:
                pairs = _pair_pos_glyph_pairs(font, subtable)
            elif subtable.Format == 2:
                pairs = _pair_pos_class_pairs(font, subtable)
            else:
                raise ExtractionError(f"Unknown PairPos format {subtable.Format}")
            kerning_subtables.append(KerningSubtable(pairs=tuple(pairs)))
        tables.append(KerningTable(subtables=tuple(kerning_subtables)))

    if not tables:
        return _legacy_kerning_tables(font)
    return tables


def flatten_kerning(tables: list[KerningTable]) -> list[KerningPair]:
    """Concatenate every subtable's pairs, table by table, keeping order.

    Later pairs may repeat an earlier glyph pair; which one wins is up to
    the consumer.
    """
    return [
        pair
        for table in tables
        for subtable in table.subtables
        for pair in subtable.pairs
    ]


# ---------------------------------------------------------------------------
# Serialization and emission
# ---------------------------------------------------------------------------

def build_font_package(font: TTFont) -> FontPackage:
    """Run every extractor over `font`."""
    return FontPackage(
        cmap=extract_cmap(font),
        glyphs=extract_glyphs(font),
        metrics=extract_metrics(font),
        ligatures=extract_ligatures(font),
        kerning=flatten_kerning(extract_kerning_tables(font)),
    )


def serialize_font_package(package: FontPackage) -> str:
    return json.dumps(package.to_dict(), separators=(",", ":"), ensure_ascii=False)


def render_module(module_name: str, data: str, target: ElmTarget) -> str:
    """Embed serialized font data in the Elm module template."""
    if not ELM_MODULE_NAME_RE.fullmatch(module_name):
        raise EmitError(f"Not a valid Elm module name: {module_name!r}")
    # Elm string literals treat backslash as an escape character
    escaped = data.replace("\\", "\\\\")
    return MODULE_TEMPLATE.format(
        module_name=module_name,
        data=escaped,
        font_module=target.font_module,
        font_alias=target.font_alias,
        font_type=target.font_type,
        decoder_module=target.decoder_module,
        decoder_alias=target.decoder_alias,
        decode_function=target.decode_function,
        fallback=target.fallback,
    )


def write_module(output_path: Path, text: str) -> Path:
    """Write the generated module, raising EmitError if that fails."""
    try:
        output_path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise EmitError(f"Cannot write {output_path}: {e}") from e
    return output_path


def convert_font(
    font_path: Path,
    output_dir: Path,
    font_name: str | None = None,
    target: ElmTarget | None = None,
) -> Path:
    """
    Convert one font file into an Elm module.

    Args:
        font_path: Font file to read
        output_dir: Directory the module is written to
        font_name: Module and file name (defaults to the font file's stem)
        target: Elm names to use (defaults to elm_target.yaml)

    Returns:
        Path of the written module.
    """
    font_path = Path(font_path)
    if font_name is None:
        font_name = font_path.stem
    if target is None:
        target = load_target_config()

    font = load_font(font_path)
    package = build_font_package(font)
    text = render_module(font_name, serialize_font_package(package), target)
    output_path = write_module(Path(output_dir) / f"{font_name}.{target.extension}", text)

    print(f"{font_path.name} -> {output_path.name}")
    print(f"  Glyphs: {len(package.glyphs)}")
    print(f"  Units per em: {package.metrics.units_per_em}")
    print(f"  Ligatures: {len(package.ligatures)}")
    print(f"  Kerning pairs: {len(package.kerning)}")
    return output_path


def resolve_font_path(arg: str) -> tuple[str, Path]:
    """Turn a CLI argument into (font name, font path)."""
    path = Path(arg)
    if path.suffix.lower() in FONT_SUFFIXES:
        return path.stem, path
    return arg, Path(f"{arg}.otf")


def ensure_output_dir(output_dir: Path) -> Path:
    """Create the output directory, raising EmitError if that fails."""
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise EmitError(f"Cannot create output directory {output_dir}: {e}") from e
    return output_dir


def main():
    if len(sys.argv) < 2:
        print("Usage: uv run python convert_font.py <FontName|font.otf> [output_dir]")
        print("\nOutputs:")
        print("  output_dir/<FontName>.elm")
        print("\nExample:")
        print("  uv run python convert_font.py Iverni build/")
        sys.exit(1)

    font_name, font_path = resolve_font_path(sys.argv[1])

    if len(sys.argv) > 2:
        output_dir = Path(sys.argv[2])
    else:
        output_dir = Path(".")

    try:
        ensure_output_dir(output_dir)
        convert_font(font_path, output_dir, font_name=font_name)
    except ConversionError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
