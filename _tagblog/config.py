"""
配置管理模块
负责加载、验证博客配置文件，并把相对路径解析到配置文件所在目录
"""
import json
import os
from pathlib import Path
from typing import Any, Dict

ENVIRONMENT_VARIABLE = 'BLOG_ENV'

DEFAULT_BUILD = {
    'posts_dir': 'content/posts',
    'tags_file': 'content/tags.json',
    'comments_file': 'content/comments/legacy-comments.json',
    'theme': 'theme',
    'exclude_dirs': ['samples'],
    'environment': 'production',
    'images_dir': 'public/images',
    'storage_dir': 'storage/images',
    'image_base_url': '/images',
    'image_storage': 'auto',
}


class ConfigError(Exception):
    """配置文件错误"""
    pass


class Config:
    """配置管理器"""

    def __init__(self, config_path: str):
        """
        初始化配置管理器

        Args:
            config_path: 配置文件路径
        """
        self.config_path = Path(config_path)
        self._config_data: Dict[str, Any] = {}
        self._loaded = False

    def load(self) -> Dict[str, Any]:
        """
        加载配置文件

        Returns:
            配置数据字典

        Raises:
            ConfigError: 配置文件不存在或格式错误
        """
        if not self.config_path.exists():
            raise ConfigError(f"配置文件不存在: {self.config_path}")

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"配置文件格式错误: {e}") from e
        except OSError as e:
            raise ConfigError(f"无法读取配置文件: {e}") from e

        self.validate()

        # 补全 build 的默认值
        build = self._config_data['build']
        for key, value in DEFAULT_BUILD.items():
            build.setdefault(key, value)

        self._loaded = True
        return self._config_data

    def validate(self) -> bool:
        """
        验证配置文件格式

        Raises:
            ConfigError: 配置缺少必需字段
        """
        if not isinstance(self._config_data, dict):
            raise ConfigError("配置文件的顶层必须是对象")

        for section in ('site', 'build'):
            if not isinstance(self._config_data.get(section), dict):
                raise ConfigError(f"配置缺少必需的部分: {section}")

        if 'title' not in self._config_data['site']:
            raise ConfigError("site 配置缺少必需字段: title")

        if 'output_dir' not in self._config_data['build']:
            raise ConfigError("build 配置缺少必需字段: output_dir")

        return True

    def get(self, key: str, default: Any = None) -> Any:
        """
        获取配置项（支持点号分隔的嵌套键）

        Args:
            key: 配置键，支持 'site.title' 这样的嵌套访问
            default: 默认值

        Returns:
            配置值
        """
        if not self._loaded:
            raise ConfigError("配置尚未加载，请先调用 load() 方法")

        value = self._config_data
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def resolve_path(self, key: str, default: str = '') -> Path:
        """
        获取路径配置，相对路径以配置文件所在目录为基准

        Args:
            key: 配置键，例如 'build.posts_dir'
            default: 默认路径
        """
        path = Path(self.get(key, default))
        if path.is_absolute():
            return path
        return self.config_path.resolve().parent / path

    @property
    def environment(self) -> str:
        """
        运行环境，BLOG_ENV 环境变量优先

        Returns:
            'development' 或 'production'
        """
        env = os.environ.get(ENVIRONMENT_VARIABLE) or self.get('build.environment', 'production')
        return 'development' if env == 'development' else 'production'

    def get_site_config(self) -> Dict[str, Any]:
        return self.get('site', {})

    def get_theme_config(self) -> Dict[str, Any]:
        return self.get('theme_config', {})

    @property
    def data(self) -> Dict[str, Any]:
        """完整的配置数据"""
        if not self._loaded:
            raise ConfigError("配置尚未加载，请先调用 load() 方法")
        return self._config_data
