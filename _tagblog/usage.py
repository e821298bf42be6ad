"""
标签使用统计模块
"""
from collections import Counter
from typing import Iterable, List, Optional, Sequence

from .markdown_processor import Post
from .tags import TagDefinition


def count_tag_usage(posts: Iterable[Post], tags: Optional[Sequence[TagDefinition]] = None,
                    include_drafts: bool = False) -> Counter:
    """
    统计每个标签 key 被多少篇文章使用

    只遍历一次文章及其标签。

    Args:
        posts: 文章列表
        tags: 已定义的标签，给出时每个 key 至少以 0 出现在结果中
        include_drafts: 是否统计草稿（本地预览、写作工具使用）

    Returns:
        key -> 文章数，未出现的 key 读出 0
    """
    counts: Counter = Counter()
    for tag in tags or ():
        counts[tag.key] += 0

    for post in posts:
        if post.draft and not include_drafts:
            continue
        counts.update(post.tags)

    return counts


def posts_with_tag(posts: Iterable[Post], key: str) -> List[Post]:
    """返回使用了指定标签的文章，保持原顺序"""
    return [post for post in posts if key in post.tags]
