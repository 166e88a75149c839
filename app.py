"""Flask application exposing the tag cloud generator over HTTP."""
from __future__ import annotations

import logging
import time
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, FrozenSet, Mapping, Optional, Sequence

from flask import Flask, current_app, jsonify, request
from werkzeug.utils import secure_filename

from tagcloud_core import (
    DEFAULT_CLASS_PREFIX,
    DEFAULT_SEPARATORS,
    DEFAULT_STYLESHEET,
    DEFAULT_TOP_N,
    RankedWord,
    SourceUnreadable,
    TagCloudError,
    build_tag_cloud,
    count_words_in_file,
    render_html,
)

BASE_DIR = Path(__file__).resolve().parent

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config.update(
    BASE_DIR=BASE_DIR,
    UPLOAD_DIR=BASE_DIR / "data" / "uploads",
    TAGCLOUD_CACHE=True,
    TAGCLOUD_CACHE_MAX=8,
)

COUNT_CACHE: OrderedDict[tuple, Dict[str, int]] = OrderedDict()


def parse_top_n(payload: Mapping[str, Any]) -> int:
    raw = payload.get("topN", DEFAULT_TOP_N)
    if isinstance(raw, bool) or not isinstance(raw, (int, str)):
        raise ValueError(f"topN must be an integer, got {raw!r}")
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"topN must be an integer, got {raw!r}")
    if value < 0:
        raise ValueError(f"topN must be >= 0, got {value}")
    return value


def parse_text_option(payload: Mapping[str, Any], key: str, default: str) -> str:
    raw = payload.get(key)
    if raw is None:
        return default
    if not isinstance(raw, str):
        raise ValueError(f"{key} must be a string, got {raw!r}")
    return raw


def build_count_cache_key(path: Path, separators: FrozenSet[str]) -> tuple:
    stat = path.stat()
    return (str(path), int(stat.st_mtime_ns), tuple(sorted(separators)))


def get_cached_counts(path: Path, separators: FrozenSet[str]) -> tuple[Optional[tuple], Optional[Dict[str, int]]]:
    if not current_app.config["TAGCLOUD_CACHE"]:
        return None, None
    try:
        key = build_count_cache_key(path, separators)
    except OSError:
        return None, None
    entry = COUNT_CACHE.get(key)
    if entry is not None:
        COUNT_CACHE.move_to_end(key)
        return key, entry
    return key, None


def store_cache_entry(cache_key: Optional[tuple], counts: Dict[str, int]) -> None:
    if cache_key is None:
        return
    capacity = max(1, int(current_app.config["TAGCLOUD_CACHE_MAX"]))
    COUNT_CACHE[cache_key] = counts
    COUNT_CACHE.move_to_end(cache_key)
    while len(COUNT_CACHE) > capacity:
        COUNT_CACHE.popitem(last=False)


def load_counts(path: Path, *, use_cache: bool) -> Dict[str, int]:
    separators = DEFAULT_SEPARATORS
    cache_key: Optional[tuple] = None
    if use_cache:
        cache_key, cached = get_cached_counts(path, separators)
        if cached is not None:
            logger.debug("Count cache hit for %s", path)
            return cached
    counts = count_words_in_file(path, separators=separators)
    if use_cache:
        store_cache_entry(cache_key, counts)
    return counts


def build_words_payload(words: Sequence[RankedWord]) -> list[Dict[str, Any]]:
    return [{"text": word.word, "count": word.count, "size": word.size_class} for word in words]


def build_analysis_payload(counts: Mapping[str, int]) -> Dict[str, Any]:
    return {
        "totalTokens": int(sum(counts.values())),
        "uniqueWords": len(counts),
    }


def resolve_input_path(path_str: str) -> Path:
    base_dir = Path(current_app.config["BASE_DIR"]).resolve()
    candidate = (base_dir / path_str).resolve() if not Path(path_str).is_absolute() else Path(path_str).resolve()
    if base_dir not in candidate.parents and candidate != base_dir:
        raise ValueError("Input path must stay within the project directory")
    return candidate


@app.post("/api/upload")
def upload() -> Any:
    if "file" not in request.files:
        return jsonify({"error": "No file part"}), 400
    file = request.files["file"]
    if not file or file.filename == "":
        return jsonify({"error": "No selected file"}), 400

    upload_dir = Path(current_app.config["UPLOAD_DIR"])
    upload_dir.mkdir(parents=True, exist_ok=True)

    filename = secure_filename(file.filename) or "upload.txt"
    destination = upload_dir / f"{int(time.time())}-{filename}"
    file.save(destination)

    base_dir = Path(current_app.config["BASE_DIR"]).resolve()
    return jsonify({
        "sourcePath": str(destination.resolve().relative_to(base_dir)),
        "filename": filename,
    })


@app.post("/api/generate")
def generate() -> Any:
    payload = request.get_json(silent=True) or {}

    source_path = payload.get("sourcePath")
    if not source_path:
        return jsonify({"error": "sourcePath missing"}), 400

    try:
        path = resolve_input_path(str(source_path))
        top_n = parse_top_n(payload)
        stylesheet = parse_text_option(payload, "stylesheet", DEFAULT_STYLESHEET)
        class_prefix = parse_text_option(payload, "classPrefix", DEFAULT_CLASS_PREFIX)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    use_cache = current_app.config["TAGCLOUD_CACHE"] and not payload.get("skipCache")

    try:
        counts = load_counts(path, use_cache=use_cache)
    except SourceUnreadable:
        return jsonify({"error": f"Input file not found: {source_path}"}), 404
    except TagCloudError as exc:
        logger.error("%s", exc)
        return jsonify({"error": str(exc)}), 500

    analysis = build_analysis_payload(counts)
    if payload.get("analysisOnly"):
        return jsonify({"analysis": analysis})

    words = build_tag_cloud(counts, top_n)
    response: Dict[str, Any] = {"words": build_words_payload(words), "analysis": analysis}

    if payload.get("returnHtml"):
        response["html"] = render_html(
            words,
            source_name=path.name,
            top_n=top_n,
            stylesheet=stylesheet,
            class_prefix=class_prefix,
        )

    return jsonify(response)


if __name__ == "__main__":
    app.run(debug=True)
