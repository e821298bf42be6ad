"""
图片迁移模块
把文章中引用的本地图片（./images/... 或 ../images/...）上传到对象存储，并改写文章中的路径
"""
import os
import re
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

IMAGE_PATTERN = re.compile(r'!\[([^\]]*)\]\((\.\.?/images/[^)]+)\)')
_IMAGE_PREFIX = re.compile(r'^\.\.?/images/')

CONTENT_TYPES = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
    '.svg': 'image/svg+xml',
}


def get_content_type(path: Path) -> str:
    return CONTENT_TYPES.get(Path(path).suffix.lower(), 'application/octet-stream')


class ObjectStorage(ABC):
    """对象存储接口"""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """对象是否已存在"""

    @abstractmethod
    def upload(self, key: str, path: Path, content_type: str) -> None:
        """上传本地文件"""

    @abstractmethod
    def url_for(self, key: str) -> str:
        """对象的公开 URL"""


class LocalDirectoryStorage(ObjectStorage):
    """把本地目录当作对象存储（例如同步到 CDN 的目录）"""

    def __init__(self, root: str, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip('/')

    def exists(self, key: str) -> bool:
        return (self.root / key).is_file()

    def upload(self, key: str, path: Path, content_type: str) -> None:
        dest = self.root / key
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(path, dest)

    def url_for(self, key: str) -> str:
        return f'{self.base_url}/{key}'


class StorageError(Exception):
    """对象存储错误"""
    pass


R2_ENV_KEYS = (
    'R2_ACCOUNT_ID',
    'R2_ACCESS_KEY_ID',
    'R2_SECRET_ACCESS_KEY',
    'R2_BUCKET',
    'R2_PUBLIC_BASE',
    'R2_ENDPOINT',
)
R2_REQUIRED_KEYS = (
    'R2_ACCOUNT_ID',
    'R2_ACCESS_KEY_ID',
    'R2_SECRET_ACCESS_KEY',
    'R2_BUCKET',
)


def r2_config(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """从环境变量读取 R2 配置，只保留非空的值"""
    environ = os.environ if environ is None else environ
    cfg = {k: (environ.get(k) or '').strip() for k in R2_ENV_KEYS}
    return {k: v for k, v in cfg.items() if v}


def r2_is_configured(cfg: Mapping[str, str]) -> bool:
    return all(cfg.get(k) for k in R2_REQUIRED_KEYS)


class R2Storage(ObjectStorage):
    """Cloudflare R2（S3 兼容 API）"""

    def __init__(self, cfg: Mapping[str, str], client: Any = None):
        """
        Args:
            cfg: R2 配置（见 R2_ENV_KEYS）
            client: boto3 S3 客户端，省略时根据配置创建
        """
        self.cfg = dict(cfg)
        self.bucket = self.cfg['R2_BUCKET']
        self.client = client if client is not None else self._make_client()

    def _make_client(self) -> Any:
        endpoint = (
            self.cfg.get('R2_ENDPOINT')
            or f"https://{self.cfg['R2_ACCOUNT_ID']}.r2.cloudflarestorage.com"
        )
        return boto3.client(
            's3',
            endpoint_url=endpoint,
            region_name='auto',
            aws_access_key_id=self.cfg['R2_ACCESS_KEY_ID'],
            aws_secret_access_key=self.cfg['R2_SECRET_ACCESS_KEY'],
        )

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            error = e.response.get('Error', {})
            status = e.response.get('ResponseMetadata', {}).get('HTTPStatusCode')
            if error.get('Code') in ('404', 'NoSuchKey', 'NotFound') or status == 404:
                return False
            raise StorageError(f"无法检查对象 {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"无法检查对象 {key}: {e}") from e
        return True

    def upload(self, key: str, path: Path, content_type: str) -> None:
        try:
            self.client.upload_file(
                str(path), self.bucket, key, ExtraArgs={'ContentType': content_type}
            )
        except (BotoCoreError, ClientError, S3UploadFailedError) as e:
            raise StorageError(f"上传失败 {key}: {e}") from e

    def url_for(self, key: str) -> str:
        base = self.cfg.get('R2_PUBLIC_BASE')
        if base:
            return f"{base.rstrip('/')}/{key.lstrip('/')}"
        return (
            f"https://{self.bucket}.{self.cfg['R2_ACCOUNT_ID']}.r2.cloudflarestorage.com/"
            f"{key.lstrip('/')}"
        )


def select_storage(kind: str, storage_dir: str, base_url: str,
                   environ: Optional[Mapping[str, str]] = None) -> ObjectStorage:
    """
    根据配置选择对象存储

    Args:
        kind: 'auto'（R2 已配置时使用 R2，否则使用本地目录）、'r2' 或 'local'
        storage_dir: 本地存储目录
        base_url: 本地存储的 URL 前缀
        environ: 读取 R2 配置的环境变量，默认 os.environ

    Raises:
        StorageError: 未知的存储类型，或指定了 r2 但缺少配置
    """
    cfg = r2_config(environ)
    if kind == 'r2' or (kind == 'auto' and r2_is_configured(cfg)):
        if not r2_is_configured(cfg):
            missing = [k for k in R2_REQUIRED_KEYS if not cfg.get(k)]
            raise StorageError(f"R2 配置缺少环境变量: {', '.join(missing)}")
        return R2Storage(cfg)
    if kind in ('auto', 'local'):
        return LocalDirectoryStorage(storage_dir, base_url)
    raise StorageError(f"未知的图片存储类型: {kind}")


@dataclass
class MigrationResult:
    uploaded: int = 0
    skipped: int = 0
    updated_files: List[Path] = field(default_factory=list)


class ImageMigrator:
    """图片迁移"""

    def __init__(self, storage: ObjectStorage, images_dir: str, posts_dir: str):
        """
        Args:
            storage: 对象存储
            images_dir: 本地图片目录
            posts_dir: 文章目录
        """
        self.storage = storage
        self.images_dir = Path(images_dir)
        self.posts_dir = Path(posts_dir)

    def _markdown_files(self) -> List[Path]:
        if not self.posts_dir.exists():
            return []
        return sorted(self.posts_dir.rglob('*.md'))

    def _object_key(self, image_path: Path) -> str:
        return image_path.relative_to(self.images_dir).as_posix()

    def find_referenced_images(self) -> List[Path]:
        """
        查找文章中引用且实际存在的本地图片

        Returns:
            图片目录下的图片路径列表（去重，按出现顺序），超出图片目录的引用被跳过
        """
        referenced: Dict[str, None] = {}
        for md_path in self._markdown_files():
            content = md_path.read_text(encoding='utf-8')
            for match in IMAGE_PATTERN.finditer(content):
                referenced[_IMAGE_PREFIX.sub('', match.group(2))] = None

        images_root = self.images_dir.resolve()
        existing = []
        for rel_path in referenced:
            full_path = self.images_dir / rel_path
            resolved = full_path.resolve()
            if not resolved.is_relative_to(images_root):
                logger.warning("图片路径超出图片目录，跳过: {}", rel_path)
                continue
            if resolved.is_file():
                existing.append(self.images_dir / resolved.relative_to(images_root))
            else:
                logger.warning("图片不存在: {}", full_path)
        return existing

    def upload_images(self, images: List[Path]) -> Tuple[Dict[str, str], int, int]:
        """
        上传图片，已存在的对象跳过

        Returns:
            (相对路径 -> URL, 上传数, 跳过数)
        """
        image_map: Dict[str, str] = {}
        uploaded = skipped = 0

        for image_path in images:
            key = self._object_key(image_path)
            if self.storage.exists(key):
                print(f"⏭  已存在，跳过: {key}")
                skipped += 1
            else:
                self.storage.upload(key, image_path, get_content_type(image_path))
                print(f"✓ 已上传: {key}")
                uploaded += 1
            image_map[key] = self.storage.url_for(key)

        return image_map, uploaded, skipped

    def rewrite_markdown(self, md_path: Path, image_map: Dict[str, str]) -> bool:
        """
        把文章中的本地图片路径替换为 URL

        Returns:
            文件是否被修改
        """
        content = md_path.read_text(encoding='utf-8')
        modified = False

        def replace(match: re.Match) -> str:
            nonlocal modified
            alt, image_path = match.group(1), match.group(2)
            url = image_map.get(_IMAGE_PREFIX.sub('', image_path))
            if url is None:
                return match.group(0)
            modified = True
            print(f"  {image_path} → {url}")
            return f'![{alt}]({url})'

        new_content = IMAGE_PATTERN.sub(replace, content)
        if modified:
            md_path.write_text(new_content, encoding='utf-8')
        return modified

    def run(self) -> MigrationResult:
        """执行迁移：查找 -> 上传 -> 改写"""
        result = MigrationResult()
        images = self.find_referenced_images()
        if not images:
            return result

        image_map, result.uploaded, result.skipped = self.upload_images(images)

        for md_path in self._markdown_files():
            if self.rewrite_markdown(md_path, image_map):
                result.updated_files.append(md_path)
                print(f"✓ 已更新: {md_path.name}")

        return result
