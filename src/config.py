# Reserved label: "no sufficiently close reference identity".
UNKNOWN_LABEL = "unknown"

# Default thresholds are per-policy and must not be shared:
# - best match compares Euclidean distance (lower is closer)
# - ranked compares cosine similarity (higher is closer)
DEFAULT_BEST_MATCH_THRESHOLD = 0.5
DEFAULT_RANKED_THRESHOLD = 0.6

# Store record fields that carry vectors (removed from ranked-match metadata).
VECTOR_FIELDS = ("descriptor", "descriptors", "face")

# InsightFace model pack used when the service bootstraps its own detector.
DEFAULT_RECOGNITION_MODEL = "buffalo_l"
DEFAULT_DET_SIZE = 640

# Fonts for annotated feedback images; non-ascii reasons need a unicode font.
FONT_LIST = [
    # macOS
    "/System/Library/Fonts/Supplemental/Arial Unicode.ttf",
    "/Library/Fonts/Arial Unicode.ttf",
    "/System/Library/Fonts/Helvetica.ttc",
    # Windows
    "C:\\Windows\\Fonts\\arial.ttf",
    "C:\\Windows\\Fonts\\arialuni.ttf",
    "C:\\Windows\\Fonts\\segoeui.ttf",
    # Linux
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/noto/NotoSans-Regular.ttf",
    "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
]

# Root logging format; model loading noise is silenced separately (suppress_fds).
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
