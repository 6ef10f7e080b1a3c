"""
Document transform: minify one HTML document and precompress the result.

The transform must be a pure function of its input bytes. Cache records are
keyed by input id only, so anything nondeterministic here (timestamps in a
gzip header, variable comments) would make cached outputs diverge from
fresh ones.
"""

from __future__ import annotations

import gzip
import hashlib
from dataclasses import asdict, dataclass
from typing import Callable

import brotli
import minify_html
import orjson

from minimizer.config import Settings
from minimizer.exceptions import TransformError
from minimizer.types import Sizes

# Bump when a change in this module alters output for the same options.
TRANSFORM_REVISION = 1


@dataclass(frozen=True)
class TransformOutput:
    """Bytes produced by transforming one document."""

    minified: bytes
    gz: bytes
    br: bytes
    sizes: Sizes


# A transform is any deterministic bytes -> TransformOutput function.
DocumentTransform = Callable[[bytes], TransformOutput]


@dataclass(frozen=True)
class TransformOptions:
    """Knobs of the document transform.

    Changing any of these changes outputs for the same input, so a cache
    file written under one set of options must not be reused under another.
    Cache files are named after ``fingerprint()`` to keep them apart.
    """

    license_comment: str | None = None
    license_anchor: str = "<head>"
    gzip_level: int = 9
    brotli_quality: int = 11

    @classmethod
    def from_settings(cls, settings: Settings) -> TransformOptions:
        return cls(
            license_comment=settings.LICENSE_COMMENT,
            license_anchor=settings.LICENSE_ANCHOR,
            gzip_level=settings.GZIP_LEVEL,
            brotli_quality=settings.BROTLI_QUALITY,
        )

    def fingerprint(self) -> str:
        """Short stable digest of the options and the transform revision."""
        payload = orjson.dumps(
            {"revision": TRANSFORM_REVISION, **asdict(self)},
            option=orjson.OPT_SORT_KEYS,
        )
        return hashlib.sha1(payload).hexdigest()[:12]


def minify_document(html: str) -> str:
    """Minify HTML, keeping structure that browsers and crawlers rely on.

    The doctype, attribute quoting and attribute spacing are left alone
    (the minify-html >= 0.16 defaults); processing instructions are removed.
    """
    return minify_html.minify(
        html,
        keep_closing_tags=True,
        keep_html_and_head_opening_tags=True,
        keep_comments=False,
        minify_css=True,
        minify_js=False,
        remove_bangs=False,
        remove_processing_instructions=True,
    )


def insert_license_comment(html: str, anchor: str, comment: str) -> str:
    """Insert a comment right after the first occurrence of anchor.

    Documents without the anchor are returned unchanged.
    """
    index = html.find(anchor)
    if index < 0:
        return html
    cut = index + len(anchor)
    return html[:cut] + comment + html[cut:]


def compress_gzip(data: bytes, level: int = 9) -> bytes:
    """gzip with a zeroed header timestamp so output depends only on input."""
    return gzip.compress(data, compresslevel=level, mtime=0)


def compress_brotli(data: bytes, quality: int = 11) -> bytes:
    """Brotli in text mode at the given quality."""
    return brotli.compress(data, mode=brotli.MODE_TEXT, quality=quality)


class DocumentTransformer:
    """Callable document transform configured by TransformOptions."""

    def __init__(self, options: TransformOptions | None = None) -> None:
        self.options = options or TransformOptions()

    def minify(self, data: bytes) -> bytes:
        try:
            html = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TransformError(
                "Document is not valid UTF-8", context={"stage": "minify", "error": str(e)}
            ) from e
        try:
            minified = minify_document(html)
        except Exception as e:
            raise TransformError(
                "Minification failed", context={"stage": "minify", "error": str(e)}
            ) from e
        if self.options.license_comment:
            minified = insert_license_comment(
                minified, self.options.license_anchor, self.options.license_comment
            )
        return minified.encode("utf-8")

    def __call__(self, data: bytes) -> TransformOutput:
        minified = self.minify(data)
        try:
            gz = compress_gzip(minified, self.options.gzip_level)
        except Exception as e:
            raise TransformError(
                "gzip compression failed", context={"stage": "gzip", "error": str(e)}
            ) from e
        try:
            br = compress_brotli(minified, self.options.brotli_quality)
        except Exception as e:
            raise TransformError(
                "brotli compression failed", context={"stage": "brotli", "error": str(e)}
            ) from e

        return TransformOutput(
            minified=minified,
            gz=gz,
            br=br,
            sizes=Sizes(
                original_len=len(data),
                minified_len=len(minified),
                gz_len=len(gz),
                br_len=len(br),
            ),
        )
