import sys
from pathlib import Path

import pytest

from fontTools.feaLib.builder import addOpenTypeFeaturesFromString
from fontTools.fontBuilder import FontBuilder
from fontTools.pens.t2CharStringPen import T2CharStringPen
from fontTools.pens.ttGlyphPen import TTGlyphPen
from fontTools.ttLib import TTFont

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

# glyph name -> (advance width, contours); glyph order follows insertion order
SAMPLE_GLYPHS = {
    ".notdef": (0, []),
    "A": (600, [[(50, 0), (300, 700), (550, 0)]]),
    "T": (600, [[(50, 650), (50, 700), (550, 700), (550, 650)]]),
    "V": (600, [[(50, 700), (300, 0), (550, 700)]]),
    "W": (800, [[(40, 700), (400, 0), (760, 700)]]),
    "f": (300, [[(40, 0), (40, 700), (260, 700), (260, 0)]]),
    "i": (250, [[(60, 0), (60, 500), (190, 500), (190, 0)]]),
    "o": (500, [[(50, 0), (50, 500), (450, 500), (450, 0)]]),
    "f_i": (520, [[(40, 0), (40, 700), (480, 700), (480, 0)]]),
    "f_f_i": (800, [[(40, 0), (40, 700), (760, 700), (760, 0)]]),
}

SAMPLE_CMAP = {ord(name): name for name in ("A", "T", "V", "W", "f", "i", "o")}

SAMPLE_FEATURES = """
languagesystem DFLT dflt;

feature liga {
    sub f f i by f_f_i;
    sub f i by f_i;
} liga;

feature kern {
    lookup kern_pairs {
        pos A V -80;
        pos A W -40;
        pos V A -60;
    } kern_pairs;
    lookup kern_classes {
        pos [T] [o] -50;
    } kern_classes;
} kern;
"""

ASCENDER = 800
DESCENDER = -200
X_HEIGHT = 500
CAP_HEIGHT = 700
UNITS_PER_EM = 1000


def contour_lsb(contours) -> int:
    """Left side bearing of a glyph drawn from straight-line contours."""
    xs = [x for contour in contours for x, _ in contour]
    return min(xs) if xs else 0


def build_test_font(glyphs=SAMPLE_GLYPHS, cmap=SAMPLE_CMAP, features=SAMPLE_FEATURES):
    """Build a CFF-based font in memory from straight-line contours."""
    fb = FontBuilder(UNITS_PER_EM, isTTF=False)
    fb.setupGlyphOrder(list(glyphs))
    fb.setupCharacterMap(cmap)

    charstrings = {}
    metrics = {}
    for glyph_name, (width, contours) in glyphs.items():
        pen = T2CharStringPen(width=width, glyphSet=None)
        for contour in contours:
            pen.moveTo(contour[0])
            for point in contour[1:]:
                pen.lineTo(point)
            pen.closePath()
        charstrings[glyph_name] = pen.getCharString()
        metrics[glyph_name] = (width, contour_lsb(contours))

    fb.setupCFF(
        psName="Sample-Regular",
        fontInfo={"FamilyName": "Sample", "FullName": "Sample Regular"},
        charStringsDict=charstrings,
        privateDict={},
    )
    fb.setupHorizontalMetrics(metrics)
    fb.setupHorizontalHeader(ascent=ASCENDER, descent=DESCENDER)
    fb.setupNameTable({"familyName": "Sample", "styleName": "Regular"})
    fb.setupOS2(
        sTypoAscender=ASCENDER,
        sTypoDescender=DESCENDER,
        usWinAscent=ASCENDER,
        usWinDescent=abs(DESCENDER),
        sxHeight=X_HEIGHT,
        sCapHeight=CAP_HEIGHT,
    )
    fb.setupPost()

    if features:
        addOpenTypeFeaturesFromString(fb.font, features)
    return fb


TRUETYPE_SHIFT = 100

# glyph name -> (advance width, left side bearing)
TRUETYPE_METRICS = {
    ".notdef": (500, 0),
    "O": (600, 50),
    "O.shifted": (700, 50 + TRUETYPE_SHIFT),
}


def build_truetype_font():
    """Build a glyf-based font with a quadratic outline and a composite of it."""
    fb = FontBuilder(UNITS_PER_EM, isTTF=True)
    fb.setupGlyphOrder(list(TRUETYPE_METRICS))
    fb.setupCharacterMap({ord("O"): "O", ord("Q"): "O.shifted"})

    glyphs = {}
    pen = TTGlyphPen(None)
    glyphs[".notdef"] = pen.glyph()

    pen = TTGlyphPen(None)
    pen.moveTo((50, 0))
    pen.qCurveTo((50, 700), (550, 700), (550, 0))
    pen.closePath()
    glyphs["O"] = pen.glyph()

    pen = TTGlyphPen(glyphs)
    pen.addComponent("O", (1, 0, 0, 1, TRUETYPE_SHIFT, 0))
    glyphs["O.shifted"] = pen.glyph()

    fb.setupGlyf(glyphs)
    fb.setupHorizontalMetrics(TRUETYPE_METRICS)
    fb.setupHorizontalHeader(ascent=ASCENDER, descent=DESCENDER)
    fb.setupNameTable({"familyName": "Quadratic", "styleName": "Regular"})
    fb.setupOS2(
        sTypoAscender=ASCENDER,
        sTypoDescender=DESCENDER,
        usWinAscent=ASCENDER,
        usWinDescent=abs(DESCENDER),
        sxHeight=X_HEIGHT,
        sCapHeight=CAP_HEIGHT,
    )
    fb.setupPost()
    return fb


@pytest.fixture(scope="session")
def truetype_font_path(tmp_path_factory):
    path = tmp_path_factory.mktemp("fonts") / "Quadratic.ttf"
    build_truetype_font().save(str(path))
    return path


@pytest.fixture(scope="session")
def sample_font_path(tmp_path_factory):
    path = tmp_path_factory.mktemp("fonts") / "Sample.otf"
    build_test_font().save(str(path))
    return path


@pytest.fixture
def sample_font(sample_font_path):
    return TTFont(str(sample_font_path))
