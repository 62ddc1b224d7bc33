"""Content helpers: tag extraction and content hashing."""
import hashlib
import logging
import re
from typing import List, Tuple

import frontmatter

logger = logging.getLogger(__name__)

# "#tag", "#project/ai", "#foo-bar", "#タグ"; not markdown headings ("# Title") or "##"
INLINE_TAG = re.compile(r"(?<![\w#/])#([\w][\w/\-]*)")


def content_sha(content: str) -> str:
    """Hex SHA-256 of the content, used to detect unchanged files on sync."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _split_frontmatter(content: str) -> Tuple[dict, str]:
    if not content.startswith("---"):
        return {}, content
    try:
        post = frontmatter.loads(content)
    except Exception as e:
        logger.warning(f"Ignoring unparsable frontmatter: {e}")
        return {}, content
    return post.metadata, post.content


def _frontmatter_tags(metadata: dict) -> List[str]:
    tags = metadata.get("tags")
    if tags is None:
        return []
    if isinstance(tags, str):
        tags = [tags]
    if not isinstance(tags, (list, tuple)):
        return []
    return [str(tag).strip() for tag in tags if tag is not None and str(tag).strip()]


def extract_tags(content: str) -> List[str]:
    """
    Collect tags from YAML frontmatter and inline #tags.

    Frontmatter tags come first, then inline tags in order of appearance;
    duplicates are dropped.
    """
    metadata, body = _split_frontmatter(content)
    tags: List[str] = []
    for tag in _frontmatter_tags(metadata) + INLINE_TAG.findall(body):
        if tag not in tags:
            tags.append(tag)
    return tags
