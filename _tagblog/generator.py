"""
静态文件生成模块
负责生成最终的静态 HTML 文件和复制静态资源
"""
import shutil
from pathlib import Path
from typing import Dict, List, Sequence

from loguru import logger

from .comments import Comment
from .markdown_processor import Post
from .renderer import Renderer
from .tags import TagLookup
from .theme import Theme
from .usage import posts_with_tag


class GenerationError(Exception):
    """生成错误"""
    pass


class StaticGenerator:
    """静态文件生成器"""

    def __init__(self, output_dir: str, theme: Theme, renderer: Renderer, lookup: TagLookup,
                 posts: Sequence[Post], comments: Sequence[Comment] = ()):
        """
        初始化生成器

        Args:
            output_dir: 输出目录
            theme: 主题管理器实例
            renderer: 渲染器实例
            lookup: 标签查询服务
            posts: 要生成的文章（已按环境过滤并排序）
            comments: 旧评论
        """
        self.output_dir = Path(output_dir)
        self.theme = theme
        self.renderer = renderer
        self.lookup = lookup
        self.posts = list(posts)
        self.comments = list(comments)
        self.written: List[Path] = []

    def generate(self) -> List[Path]:
        """
        执行生成流程

        Returns:
            生成的文件路径列表

        Raises:
            GenerationError: 生成过程中出现错误
        """
        self._check_tag_keys()
        self._check_slugs()
        self._prepare_output_dir()
        self._copy_static_assets()

        self._write_file(self.output_dir / 'index.html', self.renderer.render_index(self.posts))
        print("  ✓ 首页: index.html")

        self._generate_post_pages()
        self._generate_tag_pages()

        if self.theme.has_template('comments'):
            self._write_file(
                self.output_dir / 'comments.html', self.renderer.render_comments(self.comments)
            )
            print(f"  ✓ 评论页: comments.html ({len(self.comments)} 条)")

        if self.theme.has_template('not_found'):
            self._write_file(self.output_dir / '404.html', self.renderer.render_not_found())
            print("  ✓ 404 页: 404.html")

        print(f"✓ 静态文件生成完成，共 {len(self.written)} 个页面，输出目录: {self.output_dir}")
        return self.written

    def _check_tag_keys(self) -> None:
        """文章引用了未定义的标签时只记录警告，页面中以 key 本身显示"""
        for post in self.posts:
            for key in dict.fromkeys(self.lookup.invalid_keys_of(post.tags)):
                logger.warning("文章 {} 使用了未定义的标签: {}", post.slug, key)

    def _check_slugs(self) -> None:
        """多篇文章使用同一个 slug 时只保留最后写入的页面，这里记录警告"""
        seen: Dict[str, Post] = {}
        for post in self.posts:
            previous = seen.get(post.slug)
            if previous is not None:
                logger.warning(
                    "文章 slug 重复: {} ({} 和 {})", post.slug, previous.filepath, post.filepath
                )
            seen[post.slug] = post

    def _prepare_output_dir(self) -> None:
        """清空并重新创建输出目录"""
        try:
            if self.output_dir.exists():
                shutil.rmtree(self.output_dir)
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise GenerationError(f"无法准备输出目录 {self.output_dir}: {e}") from e

    def _copy_static_assets(self) -> None:
        """把主题的 static 目录复制到输出目录"""
        static_src = self.theme.get_static_dir()
        if static_src is None:
            logger.debug("主题没有静态资源目录，跳过")
            return

        try:
            shutil.copytree(static_src, self.output_dir / 'static')
        except OSError as e:
            raise GenerationError(f"复制静态资源失败: {e}") from e
        print(f"  ✓ 静态资源: {static_src}")

    def _generate_post_pages(self) -> None:
        posts_dir = self.output_dir / 'posts'
        for post in self.posts:
            self._write_file(posts_dir / f'{post.slug}.html', self.renderer.render_post(post))
        print(f"  ✓ 文章详情页: {len(self.posts)} 篇")

    def _generate_tag_pages(self) -> None:
        """
        生成标签一览页和每个标签的页面

        所有已定义的 key 都会生成页面（包括不在标签树中的标签），
        文章中引用的未定义 key 不生成页面
        """
        tags_dir = self.output_dir / 'tags'
        self._write_file(tags_dir / 'index.html', self.renderer.render_tags_index())

        keys = self.lookup.keys()
        for key in keys:
            html = self.renderer.render_tag_page(key, posts_with_tag(self.posts, key))
            self._write_file(tags_dir / f'{key}.html', html)

        print(f"  ✓ 标签页: {len(keys)} 个标签")

    def _write_file(self, filepath: Path, content: str) -> None:
        """
        写入文件

        Raises:
            GenerationError: 写入失败
        """
        try:
            filepath.parent.mkdir(parents=True, exist_ok=True)
            with open(filepath, 'w', encoding='utf-8') as f:
                f.write(content)
        except OSError as e:
            raise GenerationError(f"写入文件失败 {filepath}: {e}") from e
        self.written.append(filepath)
