"""Match the pages a sidecar declares to the image files actually available."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence

import structlog

from mokuro_importer.core.importing.models import ImageMatchResult
from mokuro_importer.core.utils import (
    file_stem,
    natural_sort_key,
    natural_sorted,
    normalize_name,
    normalize_path,
    strip_extension,
)

logger = structlog.get_logger("mokuro_importer.importing.matching")

DEFAULT_COUNT_FALLBACK_THRESHOLD = 0.5


def _index_by(paths: Iterable[str], key: Callable[[str], str]) -> dict[str, list[str]]:
    index: dict[str, list[str]] = {}
    for path in paths:
        index.setdefault(key(path), []).append(path)
    return index


def _take_unused(candidates: list[str] | None, used: set[str]) -> str | None:
    for candidate in candidates or ():
        if candidate not in used:
            return candidate
    return None


def match_images_to_pages(
    declared_paths: Sequence[str],
    available_paths: Iterable[str],
    fallback_threshold: float = DEFAULT_COUNT_FALLBACK_THRESHOLD,
) -> ImageMatchResult:
    """Resolve each declared page path to one available image path.

    Strategies, first hit wins and every available file is used at most once:

    1. exact path, ignoring case and separator style
    2. same path with a different extension (``a.png`` -> ``a.webp``)
    3. same filename stem anywhere in the source (``a.png`` -> ``vol/a.webp``)
    4. positional fallback for the pages still unmatched, only when as many
       files as pages are available and no more than ``fallback_threshold`` of
       the pages matched by name: leftovers are naturally sorted and zipped

    Args:
        declared_paths: Page image paths in declaration order
        available_paths: Paths of the image files at hand
        fallback_threshold: Highest named-match ratio that still allows the
            positional fallback

    Returns:
        ImageMatchResult; matched and missing keep declaration order
    """
    available = natural_sorted(list(dict.fromkeys(available_paths)))
    by_path = _index_by(available, normalize_path)
    by_extensionless = _index_by(available, lambda p: normalize_path(strip_extension(p)))
    by_stem = _index_by(available, lambda p: normalize_name(file_stem(p)))

    used: set[str] = set()
    resolved: dict[int, str] = {}

    for index, declared in enumerate(declared_paths):
        actual = (
            _take_unused(by_path.get(normalize_path(declared)), used)
            or _take_unused(
                by_extensionless.get(normalize_path(strip_extension(declared))), used
            )
            or _take_unused(by_stem.get(normalize_name(file_stem(declared))), used)
        )
        if actual is not None:
            used.add(actual)
            resolved[index] = actual

    total = len(declared_paths)
    named_matches = len(resolved)
    if (
        total
        and named_matches < total
        and total == len(available)
        and named_matches / total <= fallback_threshold
    ):
        leftover_pages = sorted(
            (i for i in range(total) if i not in resolved),
            key=lambda i: (natural_sort_key(declared_paths[i]), declared_paths[i]),
        )
        leftover_files = [path for path in available if path not in used]
        for index, actual in zip(leftover_pages, leftover_files, strict=False):
            used.add(actual)
            resolved[index] = actual
        logger.debug(
            "Applied count-based page fallback",
            named_matches=named_matches,
            fallback_matches=len(resolved) - named_matches,
            total_pages=total,
        )

    result = ImageMatchResult()
    for index, declared in enumerate(declared_paths):
        actual = resolved.get(index)
        if actual is None:
            result.missing.append(declared)
            continue
        result.matched.append(declared)
        if actual != declared:
            result.remapped[declared] = actual

    result.extra = [path for path in available if path not in used]
    return result
