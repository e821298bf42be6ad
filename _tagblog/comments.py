"""
旧评论模块
读取从旧博客迁移过来的评论（legacy-comments.json）
"""
import json
from dataclasses import dataclass
from pathlib import Path
from typing import List


class CommentsError(Exception):
    """评论文件错误"""
    pass


@dataclass(frozen=True)
class Comment:
    """迁移来的评论"""
    id: int
    post_slug: str
    post_title: str
    author: str
    date: str          # YYYY-MM-DD
    content: str


def load_legacy_comments(comments_file: str) -> List[Comment]:
    """
    读取旧评论

    Args:
        comments_file: 评论 JSON 文件路径

    Returns:
        评论列表，文件不存在时返回空列表

    Raises:
        CommentsError: 文件格式错误
    """
    path = Path(comments_file)
    if not path.exists():
        return []

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise CommentsError(f"评论文件格式错误 {path}: {e}") from e

    if not isinstance(data, list):
        raise CommentsError(f"评论文件的顶层必须是数组: {path}")

    try:
        return [
            Comment(
                id=item['id'],
                post_slug=item['postSlug'],
                post_title=item['postTitle'],
                author=item['author'],
                date=item['date'],
                content=item['content'],
            )
            for item in data
        ]
    except (KeyError, TypeError) as e:
        raise CommentsError(f"评论缺少字段 {e}: {path}") from e
