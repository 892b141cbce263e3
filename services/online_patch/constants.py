"""Constants shared across the online patch engine modules."""

from __future__ import annotations

ORIGINAL_SLOT_DIRNAME = "original"
PATCHED_SLOT_DIRNAME = "patched"
TEMP_DOWNLOAD_LABEL = "patch_download"
TEMP_ORIGINAL_LABEL = "original"
SWAP_SUFFIX = ".swap-tmp"
STATE_TMP_SUFFIX = ".tmp"

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")
HTML_SNIPPET_LENGTH = 200

PATCH_CACHE_KEY_PREFIX = "patch"
ORIGINAL_CACHE_KEY_PREFIX = "orig"
HEAD_CACHE_KEY_PREFIX = "head"
