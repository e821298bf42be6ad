"""
模板渲染模块
负责使用 Jinja2 模板引擎渲染各种页面
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from jinja2 import Environment, FileSystemLoader, TemplateError

from .comments import Comment
from .config import Config
from .markdown_processor import Post
from .tags import TagLookup
from .theme import Theme, ThemeError
from .usage import count_tag_usage

DEFAULT_DATE_FORMAT = '%Y/%m/%d %H:%M'
DEFAULT_RECENT_POSTS = 10


class RendererError(Exception):
    """渲染器错误"""
    pass


class Renderer:
    """模板渲染器"""

    def __init__(self, theme: Theme, config: Config, lookup: TagLookup, posts: Sequence[Post]):
        """
        初始化渲染器

        Args:
            theme: 主题管理器实例
            config: 配置管理器实例
            lookup: 标签查询服务
            posts: 当前环境下要公开的文章（已排序）
        """
        self.theme = theme
        self.config = config
        self.lookup = lookup
        self.posts = list(posts)
        # 文章已按运行环境过滤，这里不再排除草稿
        self.tag_counts = count_tag_usage(self.posts, include_drafts=True)

        self.env = Environment(
            loader=FileSystemLoader(str(theme.templates_dir)),
            autoescape=True,
            trim_blocks=True,
            lstrip_blocks=True
        )

        self._register_filters()
        self._register_globals()

    def _base_path(self) -> str:
        base_path = self.config.get('site.base_path', '').strip()
        if base_path and not base_path.startswith('/'):
            base_path = '/' + base_path
        return base_path.rstrip('/')

    def url_for(self, path: str) -> str:
        """生成页面 URL（支持 base_path）"""
        if not path.startswith('/'):
            path = '/' + path
        return f'{self._base_path()}{path}'

    def tag_url(self, key: str) -> str:
        return self.url_for(f'/tags/{key}.html')

    def post_url(self, post: Post) -> str:
        return self.url_for(f'/posts/{post.slug}.html')

    def _register_filters(self) -> None:
        """注册自定义 Jinja2 过滤器"""

        def format_date(value: Any, format_str: Optional[str] = None) -> str:
            if format_str is None:
                format_str = self.config.get('theme_config.date_format', DEFAULT_DATE_FORMAT)
            if isinstance(value, str):
                # 旧评论的日期是字符串，原样显示
                return value
            return value.strftime(format_str)

        def tag_links(keys: Sequence[str]) -> List[Dict[str, str]]:
            """key 列表 -> [{key, label, url}]，未定义的 key 以 key 本身作为显示名"""
            return [
                {'key': key, 'label': label, 'url': self.tag_url(key)}
                for key, label in zip(keys, self.lookup.labels_of(keys))
            ]

        self.env.filters['format_date'] = format_date
        self.env.filters['tag_links'] = tag_links

    def _register_globals(self) -> None:
        """注册全局变量"""
        self.env.globals['site'] = self.config.get_site_config()
        self.env.globals['theme'] = {
            'name': self.theme.name,
            'version': self.theme.version
        }
        self.env.globals['current_year'] = datetime.now().year
        self.env.globals['url_for'] = self.url_for
        self.env.globals['url_for_static'] = lambda path: self.url_for(f'/static/{path.lstrip("/")}')
        self.env.globals['post_url'] = self.post_url
        self.env.globals['tag_url'] = self.tag_url

        recent_count = self.config.get('theme_config.recent_posts', DEFAULT_RECENT_POSTS)
        self.env.globals['sidebar'] = {
            'recent_posts': self.posts[:recent_count],
            'tags': self.tag_tree(),
        }

    def tag_tree(self) -> List[Dict[str, Any]]:
        """展开后的标签树及每个标签的文章数"""
        return [
            {'tag': flat, 'count': self.tag_counts.get(flat.key, 0)}
            for flat in self.lookup.flatten()
        ]

    def _render(self, template_name: str, **context: Any) -> str:
        try:
            template = self.env.get_template(self.theme.get_template(template_name))
            return template.render(**context)
        except (ThemeError, TemplateError) as e:
            raise RendererError(f"渲染 {template_name} 失败: {e}") from e

    def render_index(self, posts: Sequence[Post]) -> str:
        """渲染首页"""
        return self._render('index', posts=posts)

    def render_post(self, post: Post) -> str:
        """渲染文章详情页"""
        return self._render('post', post=post)

    def render_tags_index(self) -> str:
        """渲染标签一览页（按标签树顺序，含文章数和说明）"""
        return self._render('tags', tags=self.tag_tree())

    def render_tag_page(self, key: str, posts: Sequence[Post]) -> str:
        """
        渲染单个标签的文章列表页

        Args:
            key: 标签 key
            posts: 使用该标签的文章
        """
        tag = self.lookup.find_by_key(key)
        return self._render(
            'tag',
            key=key,
            tag=tag,
            label=tag.label if tag is not None else key,
            ancestry=self.lookup.ancestry(key),
            posts=posts,
        )

    def render_comments(self, comments: Sequence[Comment]) -> str:
        """渲染旧评论页"""
        return self._render('comments', comments=comments)

    def render_not_found(self) -> str:
        """渲染 404 页"""
        return self._render('not_found')
