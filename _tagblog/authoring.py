"""
写作工具模块
添加标签、新建文章的交互流程

两个流程都是显式的状态机：每个状态向用户提问一次，
用户取消（提问器返回 None）或在确认时回答否，流程进入 ABORTED，不修改任何文件。
"""
import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from .markdown_processor import check_slug
from .prompts import Choice, ConsolePrompter, ValidationError
from .tags import (
    KEY_PATTERN,
    TagDefinition,
    TagLookup,
    TagStore,
    flatten_tags_with_path,
    is_key_duplicate,
    suggest_key,
)

NO_PARENT = '__none__'
POST_DATE_FORMAT = '%Y-%m-%d %H:%M'
_POST_DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2} \d{2}:\d{2}$')


def validate_label(value: str) -> None:
    if not value.strip():
        raise ValidationError("标签名不能为空")


def validate_description(value: str) -> None:
    if not value.strip():
        raise ValidationError("说明不能为空")


def make_key_validator(tags: List[TagDefinition]) -> Callable[[str], None]:
    """生成针对现有标签的 key 验证函数"""

    def validate_key(value: str) -> None:
        if not value.strip():
            raise ValidationError("key 不能为空")
        if not KEY_PATTERN.match(value):
            raise ValidationError("key 只能使用小写字母、数字和连字符")
        if is_key_duplicate(tags, value):
            raise ValidationError(f'key "{value}" 已存在')

    return validate_key


def validate_title(value: str) -> None:
    if not value.strip():
        raise ValidationError("标题不能为空")


def validate_slug(value: str) -> None:
    try:
        check_slug(value)
    except ValueError as e:
        raise ValidationError(str(e)) from e


def validate_post_date(value: str) -> None:
    """日期必须是 YYYY-MM-DD HH:MM 格式且是真实存在的日期"""
    if _POST_DATE_PATTERN.match(value):
        try:
            datetime.strptime(value, POST_DATE_FORMAT)
            return
        except ValueError:
            pass
    raise ValidationError("日期格式不正确 (YYYY-MM-DD HH:MM)")


def tag_tree_choices(tags: List[TagDefinition], value_of: Callable[[Any], Any]) -> List[Choice]:
    """把标签树转换为带缩进的选项列表"""
    return [
        Choice(
            name=f"{'  ' * flat.depth}{flat.display_path}",
            value=value_of(flat),
            description=flat.description,
        )
        for flat in flatten_tags_with_path(tags)
    ]


class AddTagState(Enum):
    LABEL = 'label'
    KEY = 'key'
    DESCRIPTION = 'description'
    PARENT = 'parent'
    CONFIRM = 'confirm'
    COMMITTED = 'committed'
    ABORTED = 'aborted'


class AddTagFlow:
    """
    添加标签

    LABEL -> KEY -> DESCRIPTION -> PARENT -> CONFIRM -> COMMITTED | ABORTED
    """

    def __init__(self, store: TagStore, prompter: ConsolePrompter):
        self.store = store
        self.prompter = prompter
        self.state = AddTagState.LABEL
        self.tags: List[TagDefinition] = []
        self.answers: Dict[str, Any] = {}
        self.created: Optional[TagDefinition] = None

    def run(self) -> Optional[TagDefinition]:
        """
        执行流程

        Returns:
            新建的标签，取消时返回 None

        Raises:
            TagStoreError: 标签文件无法读写
            TagParseError: 标签文件格式错误
        """
        self.tags = self.store.load_all()
        handlers = {
            AddTagState.LABEL: self._ask_label,
            AddTagState.KEY: self._ask_key,
            AddTagState.DESCRIPTION: self._ask_description,
            AddTagState.PARENT: self._ask_parent,
            AddTagState.CONFIRM: self._confirm,
        }
        while self.state not in (AddTagState.COMMITTED, AddTagState.ABORTED):
            self.state = handlers[self.state]()
        return self.created

    def _ask_label(self) -> AddTagState:
        label = self.prompter.text("标签名 (显示名):", validate=validate_label)
        if label is None:
            return AddTagState.ABORTED
        self.answers['label'] = label
        return AddTagState.KEY

    def _ask_key(self) -> AddTagState:
        key = self.prompter.text(
            "key (frontmatter 用):",
            default=suggest_key(self.answers['label']),
            validate=make_key_validator(self.tags),
        )
        if key is None:
            return AddTagState.ABORTED
        self.answers['key'] = key
        return AddTagState.DESCRIPTION

    def _ask_description(self) -> AddTagState:
        description = self.prompter.text("说明:", validate=validate_description)
        if description is None:
            return AddTagState.ABORTED
        self.answers['description'] = description
        return AddTagState.PARENT

    def _ask_parent(self) -> AddTagState:
        choices = [Choice(
            name="(无) 作为根标签添加",
            value=NO_PARENT,
            description="不设置父标签，作为顶层标签添加",
        )]
        choices.extend(tag_tree_choices(self.tags, lambda flat: flat.id))

        parent = self.prompter.select("选择父标签:", choices)
        if parent is None:
            return AddTagState.ABORTED
        self.answers['parent_id'] = None if parent == NO_PARENT else parent
        return AddTagState.CONFIRM

    def _confirm(self) -> AddTagState:
        answers = self.answers
        self.prompter.info()
        self.prompter.info("--- 确认添加内容 ---")
        self.prompter.info(f"  标签名 : {answers['label']}")
        self.prompter.info(f"  key    : {answers['key']}")
        self.prompter.info(f"  说明   : {answers['description']}")
        if answers['parent_id'] is not None:
            parent = TagLookup(self.tags).find_by_id(answers['parent_id'])
            parent_label = parent.label if parent is not None else answers['parent_id']
            self.prompter.info(f"  父标签 : {parent_label} (id: {answers['parent_id']})")
        else:
            self.prompter.info("  父标签 : 无 (根标签)")
        self.prompter.info()

        ok = self.prompter.confirm("确定添加这个标签吗?", default=True)
        if not ok:
            return AddTagState.ABORTED

        self.created = self.store.append(
            self.tags,
            key=answers['key'],
            label=answers['label'],
            description=answers['description'],
            parent_id=answers['parent_id'],
        )
        logger.debug("已添加标签 {} (id: {})", self.created.key, self.created.id)
        return AddTagState.COMMITTED


@dataclass
class PostDraft:
    """新文章的 frontmatter"""
    title: str
    slug: str
    date: str
    tags: List[str] = field(default_factory=list)
    description: str = ""
    draft: bool = True

    @property
    def filename(self) -> str:
        # 文件名: {yyyy-MM-dd}_{slug}.md
        return f"{self.date.split(' ')[0]}_{self.slug}.md"

    def to_markdown(self) -> str:
        """生成只有 frontmatter 的文章内容，字符串值以 JSON 形式加引号（同时是合法的 YAML）"""
        tags = ', '.join(json.dumps(tag, ensure_ascii=False) for tag in self.tags)
        lines = [
            '---',
            f'title: {json.dumps(self.title, ensure_ascii=False)}',
            f'date: {self.date}',
            f'slug: {self.slug}',
            f'draft: {"true" if self.draft else "false"}',
            f'tags: [{tags}]',
            f'description: {json.dumps(self.description, ensure_ascii=False)}',
            '---',
            '',
            '',
        ]
        return '\n'.join(lines)


def write_post(posts_dir: Path, post: PostDraft) -> Path:
    """
    写入新文章文件

    Raises:
        FileExistsError: 同名文件已存在
    """
    path = Path(posts_dir) / post.filename
    if path.exists():
        raise FileExistsError(f"文件已存在: {path}")

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'x', encoding='utf-8') as f:
        f.write(post.to_markdown())
    return path


class NewPostState(Enum):
    TITLE = 'title'
    SLUG = 'slug'
    DATE = 'date'
    TAGS = 'tags'
    DESCRIPTION = 'description'
    DRAFT = 'draft'
    WRITTEN = 'written'
    ABORTED = 'aborted'


class NewPostFlow:
    """
    新建文章

    TITLE -> SLUG -> DATE -> TAGS -> DESCRIPTION -> DRAFT -> WRITTEN | ABORTED
    """

    def __init__(self, posts_dir: Path, tags: List[TagDefinition], prompter: ConsolePrompter,
                 now: Callable[[], datetime] = datetime.now):
        self.posts_dir = Path(posts_dir)
        self.tags = tags
        self.prompter = prompter
        self.now = now
        self.state = NewPostState.TITLE
        self.answers: Dict[str, Any] = {}
        self.path: Optional[Path] = None

    def run(self) -> Optional[Path]:
        """
        执行流程

        Returns:
            新文章的路径，取消时返回 None

        Raises:
            FileExistsError: 同名文件已存在
        """
        handlers = {
            NewPostState.TITLE: self._ask_title,
            NewPostState.SLUG: self._ask_slug,
            NewPostState.DATE: self._ask_date,
            NewPostState.TAGS: self._ask_tags,
            NewPostState.DESCRIPTION: self._ask_description,
            NewPostState.DRAFT: self._ask_draft,
        }
        while self.state not in (NewPostState.WRITTEN, NewPostState.ABORTED):
            self.state = handlers[self.state]()
        return self.path

    def _ask_title(self) -> NewPostState:
        title = self.prompter.text("标题:", validate=validate_title)
        if title is None:
            return NewPostState.ABORTED
        self.answers['title'] = title
        return NewPostState.SLUG

    def _ask_slug(self) -> NewPostState:
        slug = self.prompter.text(
            "slug:", default=suggest_key(self.answers['title']), validate=validate_slug
        )
        if slug is None:
            return NewPostState.ABORTED
        self.answers['slug'] = slug
        return NewPostState.DATE

    def _ask_date(self) -> NewPostState:
        date = self.prompter.text(
            "日期 (YYYY-MM-DD HH:MM):",
            default=self.now().strftime(POST_DATE_FORMAT),
            validate=validate_post_date,
        )
        if date is None:
            return NewPostState.ABORTED
        self.answers['date'] = date
        return NewPostState.TAGS

    def _ask_tags(self) -> NewPostState:
        choices = tag_tree_choices(self.tags, lambda flat: flat.key)
        if not choices:
            self.answers['tags'] = []
            return NewPostState.DESCRIPTION

        tags = self.prompter.checkbox("选择标签:", choices)
        if tags is None:
            return NewPostState.ABORTED
        self.answers['tags'] = tags
        return NewPostState.DESCRIPTION

    def _ask_description(self) -> NewPostState:
        description = self.prompter.text("概要 (建议 150-200 字，可省略):")
        if description is None:
            return NewPostState.ABORTED
        self.answers['description'] = description
        return NewPostState.DRAFT

    def _ask_draft(self) -> NewPostState:
        draft = self.prompter.confirm("作为草稿创建吗?", default=True)
        if draft is None:
            return NewPostState.ABORTED
        self.answers['draft'] = draft

        post = PostDraft(
            title=self.answers['title'],
            slug=self.answers['slug'],
            date=self.answers['date'],
            tags=self.answers['tags'],
            description=self.answers['description'],
            draft=draft,
        )
        self.path = write_post(self.posts_dir, post)
        return NewPostState.WRITTEN
