"""
标签模块
负责标签定义的加载与保存、标签树展开，以及按 id / key 查询标签
"""
import json
import os
import re
import stat
import tempfile
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

KEY_PATTERN = re.compile(r'^[a-z0-9-]+$')
PATH_SEPARATOR = ' > '


class TagError(Exception):
    """标签错误"""
    pass


class TagStoreError(TagError):
    """标签文件无法读取或写入"""
    pass


class TagParseError(TagError):
    """标签文件格式错误"""
    pass


@dataclass(frozen=True)
class TagDefinition:
    """标签定义（标签森林中的一个节点）"""
    id: int
    key: str                          # frontmatter 和 URL 中使用的稳定标识
    label: str                        # 显示名
    description: str
    parent_id: Optional[int] = None   # 为 None 时是根标签

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @classmethod
    def from_dict(cls, data: Any) -> 'TagDefinition':
        """
        从 JSON 对象构建标签定义

        Raises:
            TagParseError: 字段缺失或类型不正确
        """
        if not isinstance(data, dict):
            raise TagParseError(f"标签定义必须是对象: {data!r}")

        for field_name, field_type in (('id', int), ('key', str), ('label', str), ('description', str)):
            if field_name not in data:
                raise TagParseError(f"标签定义缺少字段 {field_name}: {data!r}")
            value = data[field_name]
            # bool 是 int 的子类，需要单独排除
            if not isinstance(value, field_type) or isinstance(value, bool):
                raise TagParseError(f"标签字段 {field_name} 类型错误: {data!r}")

        parent_id = data.get('parentId')
        if parent_id is not None and (not isinstance(parent_id, int) or isinstance(parent_id, bool)):
            raise TagParseError(f"标签字段 parentId 类型错误: {data!r}")

        return cls(
            id=data['id'],
            key=data['key'],
            label=data['label'],
            description=data['description'],
            parent_id=parent_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        """转换为持久化格式，没有父标签时省略 parentId"""
        data: Dict[str, Any] = {
            'id': self.id,
            'key': self.key,
            'label': self.label,
            'description': self.description,
        }
        if self.parent_id is not None:
            data['parentId'] = self.parent_id
        return data


@dataclass(frozen=True)
class FlatTagWithPath:
    """展开后的标签：标签定义 + 深度 + 从根到自身的显示路径"""
    tag: TagDefinition
    depth: int
    display_path: str

    @property
    def id(self) -> int:
        return self.tag.id

    @property
    def key(self) -> str:
        return self.tag.key

    @property
    def label(self) -> str:
        return self.tag.label

    @property
    def description(self) -> str:
        return self.tag.description

    @property
    def parent_id(self) -> Optional[int]:
        return self.tag.parent_id

    def to_dict(self) -> Dict[str, Any]:
        data = self.tag.to_dict()
        data['depth'] = self.depth
        data['displayPath'] = self.display_path
        return data


def next_id(tags: Sequence[TagDefinition]) -> int:
    """
    计算下一个标签 id

    每次调用都重新计算，不缓存计数器

    Returns:
        空列表返回 1，否则返回最大 id + 1
    """
    if not tags:
        return 1
    return max(tag.id for tag in tags) + 1


def is_key_duplicate(tags: Sequence[TagDefinition], key: str) -> bool:
    """key 是否已存在（区分大小写的精确匹配）"""
    return any(tag.key == key for tag in tags)


def find_orphans(tags: Sequence[TagDefinition]) -> List[TagDefinition]:
    """返回 parentId 指向不存在标签的标签"""
    ids = {tag.id for tag in tags}
    return [tag for tag in tags if tag.parent_id is not None and tag.parent_id not in ids]


def suggest_key(label: str) -> str:
    """
    根据显示名生成建议的 key

    转小写，移除非单词字符，空白替换为连字符，并去掉首尾连字符。
    例如 "Hello, World! " -> "hello-world"
    """
    key = label.lower()
    key = re.sub(r'[^\w\s-]', '', key, flags=re.ASCII)
    key = re.sub(r'\s+', '-', key)
    key = re.sub(r'-+', '-', key)
    return key.strip('-')


def flatten_tags_with_path(tags: Sequence[TagDefinition]) -> List[FlatTagWithPath]:
    """
    按深度优先先序展开标签森林

    根标签和同一父标签下的子标签都保持源列表中的顺序。
    从任何根标签都到达不了的标签（父标签不存在、成环）不会出现在结果中。

    Args:
        tags: 标签定义列表

    Returns:
        带深度和显示路径的新列表
    """
    roots = [tag for tag in tags if tag.parent_id is None]

    children: Dict[int, List[TagDefinition]] = defaultdict(list)
    for tag in tags:
        if tag.parent_id is not None:
            children[tag.parent_id].append(tag)

    result: List[FlatTagWithPath] = []

    def traverse(tag: TagDefinition, parent_path: str, depth: int) -> None:
        display_path = f'{parent_path}{PATH_SEPARATOR}{tag.label}' if parent_path else tag.label
        result.append(FlatTagWithPath(tag=tag, depth=depth, display_path=display_path))
        for child in children.get(tag.id, []):
            traverse(child, display_path, depth + 1)

    for root in roots:
        traverse(root, '', 0)

    return result


class TagStore:
    """
    标签定义存储

    持久化格式是一个 JSON 数组，4 空格缩进并以换行结尾。
    load -> 修改 -> save 不是事务性的：两个进程同时追加标签时，后保存的一方会覆盖先保存的一方。
    """

    def __init__(self, tags_file: str):
        """
        初始化标签存储

        Args:
            tags_file: 标签 JSON 文件路径
        """
        self.tags_file = Path(tags_file)
        self._tags: List[TagDefinition] = []
        self._loaded = False

    def load_all(self) -> List[TagDefinition]:
        """
        从文件读取全部标签定义（不修改缓存）

        Returns:
            按文件顺序排列的标签定义列表

        Raises:
            TagStoreError: 文件无法读取
            TagParseError: 文件格式错误
        """
        try:
            raw = self.tags_file.read_text(encoding='utf-8')
        except OSError as e:
            raise TagStoreError(f"无法读取标签文件 {self.tags_file}: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise TagParseError(f"标签文件格式错误 {self.tags_file}: {e}") from e

        if not isinstance(data, list):
            raise TagParseError(f"标签文件的顶层必须是数组: {self.tags_file}")

        return [TagDefinition.from_dict(item) for item in data]

    def load(self) -> List[TagDefinition]:
        """
        加载标签定义并缓存在存储对象上

        父标签不存在的标签只记录警告，不会被拒绝

        Returns:
            标签定义列表
        """
        tags = self.load_all()
        for orphan in find_orphans(tags):
            logger.warning(
                "标签 {} (id: {}) 的父标签 {} 不存在，将不会出现在标签树中",
                orphan.key, orphan.id, orphan.parent_id,
            )
        self._tags = tags
        self._loaded = True
        logger.debug("已加载 {} 个标签: {}", len(tags), self.tags_file)
        return list(tags)

    def reload(self) -> List[TagDefinition]:
        """重新从文件加载"""
        return self.load()

    @property
    def tags(self) -> List[TagDefinition]:
        if not self._loaded:
            raise TagStoreError("标签尚未加载，请先调用 load() 方法")
        return list(self._tags)

    @staticmethod
    def serialize(tags: Sequence[TagDefinition]) -> str:
        """序列化为固定格式的 JSON 文本"""
        payload = [tag.to_dict() for tag in tags]
        return json.dumps(payload, ensure_ascii=False, indent=4) + '\n'

    def save(self, tags: Sequence[TagDefinition]) -> None:
        """
        保存标签定义

        先写入同目录的临时文件再替换，写入失败时原文件保持不变

        Raises:
            TagStoreError: 写入失败
        """
        content = self.serialize(tags)
        tmp_path = None
        try:
            self.tags_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f'.{self.tags_file.name}.', dir=str(self.tags_file.parent)
            )
            with os.fdopen(fd, 'w', encoding='utf-8', newline='\n') as f:
                f.write(content)
            # mkstemp 创建的文件权限是 0600，沿用原文件的权限
            if self.tags_file.exists():
                os.chmod(tmp_path, stat.S_IMODE(os.stat(self.tags_file).st_mode))
            os.replace(tmp_path, self.tags_file)
        except OSError as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise TagStoreError(f"无法写入标签文件 {self.tags_file}: {e}") from e

        self._tags = list(tags)
        self._loaded = True

    def append(self, tags: Sequence[TagDefinition], key: str, label: str,
               description: str, parent_id: Optional[int] = None) -> TagDefinition:
        """
        在给定列表末尾追加一个新标签并保存

        Args:
            tags: 当前的标签列表（通常来自 load_all）
            key: 新标签的 key
            label: 显示名
            description: 说明
            parent_id: 父标签 id，None 表示根标签

        Returns:
            新建的标签定义

        Raises:
            TagError: key 已存在
            TagStoreError: 写入失败
        """
        if is_key_duplicate(tags, key):
            raise TagError(f'key "{key}" 已存在')

        tag = TagDefinition(
            id=next_id(tags),
            key=key,
            label=label,
            description=description,
            parent_id=parent_id,
        )
        self.save(list(tags) + [tag])
        return tag


class TagLookup:
    """标签查询服务"""

    def __init__(self, tags: Sequence[TagDefinition]):
        """
        Args:
            tags: 标签定义列表（通常来自 TagStore.tags）
        """
        self._tags = list(tags)
        self._by_id: Dict[int, TagDefinition] = {}
        self._by_key: Dict[str, TagDefinition] = {}
        for tag in self._tags:
            self._by_id.setdefault(tag.id, tag)
            self._by_key.setdefault(tag.key, tag)

    def __len__(self) -> int:
        return len(self._tags)

    def find_by_id(self, tag_id: int) -> Optional[TagDefinition]:
        return self._by_id.get(tag_id)

    def find_by_key(self, key: str) -> Optional[TagDefinition]:
        return self._by_key.get(key)

    def is_valid_key(self, key: str) -> bool:
        return key in self._by_key

    def invalid_keys_of(self, keys: Sequence[str]) -> List[str]:
        """返回未定义的 key，保持输入的顺序和重复"""
        return [key for key in keys if not self.is_valid_key(key)]

    def labels_of(self, keys: Sequence[str]) -> List[str]:
        """
        把 key 列表转换为显示名列表

        未定义的 key 原样返回，旧文章引用了已删除的标签时也能正常渲染
        """
        labels = []
        for key in keys:
            tag = self.find_by_key(key)
            labels.append(tag.label if tag is not None else key)
        return labels

    def keys(self) -> List[str]:
        """全部已定义的 key（源顺序），用于枚举静态标签页"""
        return [tag.key for tag in self._tags]

    def flatten(self) -> List[FlatTagWithPath]:
        return flatten_tags_with_path(self._tags)

    def ancestry(self, key: str) -> List[TagDefinition]:
        """
        从根到自身的标签链

        父标签缺失或出现重复 id 时停止向上查找

        Returns:
            标签定义列表，key 未定义时返回空列表
        """
        tag = self.find_by_key(key)
        chain: List[TagDefinition] = []
        seen = set()
        while tag is not None and tag.id not in seen:
            seen.add(tag.id)
            chain.append(tag)
            tag = self.find_by_id(tag.parent_id) if tag.parent_id is not None else None
        chain.reverse()
        return chain
