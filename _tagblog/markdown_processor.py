"""
Markdown 处理模块
负责查找文章文件、解析 frontmatter、提取摘要并转换为 HTML
"""
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import frontmatter
import markdown
import yaml
from loguru import logger

from .tags import suggest_key

MORE_SEPARATOR = '<!-- more -->'

DATE_FORMATS = [
    '%Y-%m-%d %H:%M',
    '%Y-%m-%d',
    '%Y/%m/%d %H:%M',
    '%Y/%m/%d',
    '%Y-%m-%d %H:%M:%S',
    '%Y/%m/%d %H:%M:%S',
    '%Y-%m-%dT%H:%M:%S',
    '%Y-%m-%dT%H:%M',
]

_DATE_PREFIX = re.compile(r'^\d{4}-\d{2}-\d{2}_')


def check_slug(slug: str) -> None:
    """
    检查 slug 能否安全地用作输出文件名

    Raises:
        ValueError: slug 为空、包含路径分隔符或是 . / ..
    """
    if not slug.strip():
        raise ValueError("slug 不能为空")
    if '/' in slug or '\\' in slug:
        raise ValueError(f"slug 不能包含路径分隔符: {slug}")
    if slug in ('.', '..'):
        raise ValueError(f"slug 不合法: {slug}")


@dataclass
class Post:
    """文章数据模型"""
    filepath: str              # 源文件路径
    slug: str                  # URL slug
    title: str                 # 标题
    date: datetime             # 发布日期
    tags: List[str] = field(default_factory=list)   # 标签 key（不是 id）
    description: str = ""      # 描述
    draft: bool = False        # 是否为草稿
    image: str = ""            # OGP 图片等
    content: str = ""          # 去掉分隔符后的 Markdown
    excerpt: Optional[str] = None   # 摘要 Markdown
    html: str = ""             # 正文 HTML
    excerpt_html: str = ""     # 摘要 HTML
    metadata: Dict[str, Any] = field(default_factory=dict)  # 原始 frontmatter


def extract_excerpt(raw_content: str) -> Tuple[str, Optional[str]]:
    """
    以 <!-- more --> 为分隔提取摘要

    - 有分隔符：分隔符之前的内容为摘要，正文为去掉分隔符后的全文
    - 没有分隔符：第一个段落（空行分隔）为摘要

    Args:
        raw_content: Markdown 正文

    Returns:
        (正文, 摘要)，没有摘要时摘要为 None
    """
    index = raw_content.find(MORE_SEPARATOR)
    if index == -1:
        first_paragraph = re.split(r'\n\n+', raw_content)[0].strip()
        return raw_content, first_paragraph or None

    before = raw_content[:index].strip()
    after = raw_content[index + len(MORE_SEPARATOR):].strip()
    content = '\n\n'.join(part for part in (before, after) if part)
    return content, before


def is_draft(post: Post) -> bool:
    return post.draft


def is_published(post: Post) -> bool:
    """文章是否可以在正式环境公开"""
    return not post.draft


def filter_published_posts(posts: Iterable[Post]) -> List[Post]:
    return [post for post in posts if is_published(post)]


def sort_posts_by_date(posts: Iterable[Post]) -> List[Post]:
    """按日期降序排序（最新的在前），返回新列表"""
    return sorted(posts, key=lambda p: p.date, reverse=True)


def posts_for_environment(posts: Iterable[Post], environment: str) -> List[Post]:
    """
    根据运行环境选择文章

    - development: 全部文章（含草稿）
    - 其他: 只有公开文章
    """
    if environment == 'development':
        return sort_posts_by_date(posts)
    return sort_posts_by_date(filter_published_posts(posts))


class MarkdownProcessor:
    """Markdown 处理器"""

    def __init__(self, md_dir: str, exclude_dirs: Sequence[str] = ('samples',)):
        """
        初始化 Markdown 处理器

        Args:
            md_dir: 文章目录路径
            exclude_dirs: 跳过的子目录名
        """
        self.md_dir = Path(md_dir).resolve()
        self.exclude_dirs = set(exclude_dirs)
        self.md_converter = markdown.Markdown(
            extensions=[
                'extra',           # 表格、代码块等扩展语法
                'codehilite',      # 代码高亮
                'toc',
                'sane_lists',
            ],
            extension_configs={
                'codehilite': {
                    'css_class': 'highlight',
                    'linenums': False
                }
            }
        )

    def find_markdown_files(self) -> List[Path]:
        """递归查找 .md 文件，跳过排除目录"""
        if not self.md_dir.exists():
            return []

        files = []
        for md_file in sorted(self.md_dir.rglob('*.md')):
            rel_parts = md_file.relative_to(self.md_dir).parts[:-1]
            if any(part in self.exclude_dirs for part in rel_parts):
                continue
            if md_file.is_file():
                files.append(md_file)
        return files

    def load_posts(self) -> List[Post]:
        """
        加载所有文章

        无法解析的文件记录警告后跳过

        Returns:
            文章列表，按日期降序排序
        """
        posts = []
        for md_file in self.find_markdown_files():
            try:
                posts.append(self.parse_post(str(md_file)))
            except (ValueError, OSError) as e:
                logger.warning("无法解析文件 {}: {}", md_file, e)
                continue

        return sort_posts_by_date(posts)

    def parse_post(self, filepath: str) -> Post:
        """
        解析单个文章文件

        Args:
            filepath: 文章文件路径

        Returns:
            Post 对象

        Raises:
            ValueError: 文件格式错误或缺少必需字段
        """
        filepath_obj = Path(filepath)

        with open(filepath_obj, 'r', encoding='utf-8') as f:
            file_content = f.read()

        metadata, body = self._extract_frontmatter(file_content)

        if not metadata.get('title'):
            raise ValueError("文章缺少必需的 frontmatter 字段: title")

        if metadata.get('date'):
            post_date = self._parse_date(metadata['date'])
        else:
            # 没有日期时使用文件修改时间
            post_date = datetime.fromtimestamp(filepath_obj.stat().st_mtime)

        slug = str(metadata.get('slug') or self._slug_from_filename(filepath_obj))
        check_slug(slug)

        content, excerpt = extract_excerpt(body.strip())

        post = Post(
            filepath=str(filepath_obj),
            slug=slug,
            title=str(metadata['title']),
            date=post_date,
            tags=self._parse_tags(metadata.get('tags')),
            description=str(metadata.get('description') or ''),
            draft=metadata.get('draft') is True or str(metadata.get('draft')).lower() == 'true',
            image=str(metadata.get('image') or ''),
            content=content,
            excerpt=excerpt,
            html=self.render(content),
            excerpt_html=self.render(excerpt) if excerpt else '',
            metadata=metadata,
        )
        logger.debug("已解析文章: {} ({})", post.slug, filepath_obj)
        return post

    def render(self, markdown_text: str) -> str:
        """转换 Markdown 到 HTML"""
        self.md_converter.reset()
        return self.md_converter.convert(markdown_text)

    def _extract_frontmatter(self, content: str) -> Tuple[Dict[str, Any], str]:
        """
        提取 YAML frontmatter

        Raises:
            ValueError: frontmatter 不是合法的 YAML
        """
        try:
            post = frontmatter.loads(content)
        except yaml.YAMLError as e:
            raise ValueError(f"frontmatter 格式错误: {e}") from e
        return dict(post.metadata), post.content

    def _parse_tags(self, tags: Any) -> List[str]:
        if not tags:
            return []
        if isinstance(tags, str):
            return [tag.strip() for tag in tags.split(',') if tag.strip()]
        if isinstance(tags, (list, tuple)):
            return [str(tag).strip() for tag in tags]
        raise ValueError(f"tags 必须是列表或逗号分隔的字符串: {tags!r}")

    def _slug_from_filename(self, filepath: Path) -> str:
        # new-post 生成的文件名形如 2024-01-01_my-post.md
        return suggest_key(_DATE_PREFIX.sub('', filepath.stem))

    def _parse_date(self, date_value: Any) -> datetime:
        """
        解析日期值

        Args:
            date_value: 日期值（字符串、datetime、date）

        Returns:
            不带时区的 datetime 对象，带时区的日期转换为本地时间
        """
        if isinstance(date_value, datetime):
            return self._to_naive_local(date_value)

        if isinstance(date_value, date):
            return datetime.combine(date_value, datetime.min.time())

        if isinstance(date_value, str):
            for fmt in DATE_FORMATS:
                try:
                    return datetime.strptime(date_value.strip(), fmt)
                except ValueError:
                    continue

            # 带时区偏移的 ISO 8601 字符串，例如 2024-01-01T10:00:00+09:00
            try:
                return self._to_naive_local(datetime.fromisoformat(date_value.strip()))
            except ValueError:
                pass

            raise ValueError(f"无法解析日期格式: {date_value}")

        raise ValueError(f"不支持的日期类型: {type(date_value)}")

    @staticmethod
    def _to_naive_local(value: datetime) -> datetime:
        # 混合带时区和不带时区的日期无法排序
        if value.tzinfo is None:
            return value
        return value.astimezone().replace(tzinfo=None)
