"""
主题管理模块
负责加载主题元数据（theme.json）并查找模板文件
"""
import json
from pathlib import Path
from typing import Any, Dict, Optional

REQUIRED_TEMPLATES = ('base', 'index', 'post', 'tags', 'tag')


class ThemeError(Exception):
    """主题错误"""
    pass


class Theme:
    """主题管理器"""

    def __init__(self, theme_dir: str):
        """
        初始化主题管理器

        Args:
            theme_dir: 主题目录路径
        """
        self.theme_dir = Path(theme_dir)
        self._metadata: Dict[str, Any] = {}
        self._loaded = False

    def load(self) -> bool:
        """
        加载主题

        Raises:
            ThemeError: 主题目录不存在、元数据格式错误或缺少必需模板
        """
        if not self.theme_dir.is_dir():
            raise ThemeError(f"主题目录不存在: {self.theme_dir}")

        theme_json_path = self.theme_dir / 'theme.json'
        if not theme_json_path.exists():
            raise ThemeError(f"主题缺少 theme.json: {theme_json_path}")

        try:
            with open(theme_json_path, 'r', encoding='utf-8') as f:
                self._metadata = json.load(f)
        except json.JSONDecodeError as e:
            raise ThemeError(f"主题元数据文件格式错误: {e}") from e
        except OSError as e:
            raise ThemeError(f"无法读取主题元数据: {e}") from e

        self._loaded = True
        self.validate_structure()
        return True

    def validate_structure(self) -> bool:
        """
        检查必需的模板都已配置且文件存在

        Raises:
            ThemeError: 主题结构不符合规范
        """
        for name in REQUIRED_TEMPLATES:
            self.get_template(name)

        static_dir = self.theme_dir / 'static'
        if static_dir.exists() and not static_dir.is_dir():
            raise ThemeError(f"static 路径存在但不是目录: {static_dir}")

        return True

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            raise ThemeError("主题尚未加载，请先调用 load() 方法")

    def has_template(self, template_name: str) -> bool:
        """主题是否配置了指定模板（如 'comments', 'not_found'）"""
        return self._loaded and template_name in self._metadata.get('templates', {})

    def get_template(self, template_name: str) -> str:
        """
        获取模板文件名（相对于 templates 目录）

        Raises:
            ThemeError: 主题未加载、未配置该模板或模板文件不存在
        """
        self._ensure_loaded()

        templates = self._metadata.get('templates', {})
        if template_name not in templates:
            raise ThemeError(f"主题未配置模板: {template_name}")

        filename = templates[template_name]
        if not filename.endswith('.html'):
            filename += '.html'

        if not (self.templates_dir / filename).is_file():
            raise ThemeError(f"模板文件不存在: {filename}")

        return filename

    @property
    def templates_dir(self) -> Path:
        return self.theme_dir / 'templates'

    def get_static_dir(self) -> Optional[Path]:
        """静态资源目录，不存在时返回 None"""
        self._ensure_loaded()
        static_dir = self.theme_dir / 'static'
        return static_dir if static_dir.is_dir() else None

    @property
    def name(self) -> str:
        return self._metadata.get('name', self.theme_dir.name)

    @property
    def version(self) -> str:
        return self._metadata.get('version', '1.0.0')
