"""
命令行入口

  tagblog build            生成静态网站
  tagblog add-tag          交互式添加标签
  tagblog new-post         交互式新建文章
  tagblog list-tags        显示标签树及使用数
  tagblog migrate-images   把文章中的本地图片迁移到对象存储
"""
import argparse
import sys
from typing import List, Optional

from loguru import logger

from .authoring import AddTagFlow, NewPostFlow
from .comments import CommentsError, load_legacy_comments
from .config import Config, ConfigError
from .generator import GenerationError, StaticGenerator
from .images import ImageMigrator, StorageError, select_storage
from .markdown_processor import MarkdownProcessor, posts_for_environment
from .prompts import ConsolePrompter
from .renderer import Renderer, RendererError
from .report import render_tag_report
from .tags import TagError, TagLookup, TagStore
from .theme import Theme, ThemeError
from .usage import count_tag_usage

CANCELLED_MESSAGE = "\n已取消。"


def _load_posts(config: Config) -> MarkdownProcessor:
    return MarkdownProcessor(
        str(config.resolve_path('build.posts_dir')),
        exclude_dirs=config.get('build.exclude_dirs', []),
    )


def build(config: Config, environment: Optional[str] = None) -> int:
    """生成静态网站"""
    environment = environment or config.environment
    print(f"开始生成静态博客文件 ({environment})...")

    store = TagStore(str(config.resolve_path('build.tags_file')))
    store.load()
    lookup = TagLookup(store.tags)
    print(f"→ 标签: {len(lookup)} 个")

    theme = Theme(str(config.resolve_path('build.theme')))
    theme.load()
    print(f"→ 主题: {theme.name}")

    all_posts = _load_posts(config).load_posts()
    posts = posts_for_environment(all_posts, environment)
    print(f"→ 文章: {len(posts)} 篇 (共 {len(all_posts)} 篇)")

    comments = load_legacy_comments(str(config.resolve_path('build.comments_file')))

    renderer = Renderer(theme, config, lookup, posts)
    generator = StaticGenerator(
        str(config.resolve_path('build.output_dir')),
        theme, renderer, lookup, posts, comments,
    )
    generator.generate()
    print("\n博客已生成完成！")
    return 0


def add_tag(config: Config, prompter: Optional[ConsolePrompter] = None) -> int:
    """交互式添加标签"""
    prompter = prompter or ConsolePrompter()
    print("\n=== 添加标签 ===\n")

    store = TagStore(str(config.resolve_path('build.tags_file')))
    tag = AddTagFlow(store, prompter).run()
    if tag is None:
        print(CANCELLED_MESSAGE)
        return 0

    print(f'\n已添加: "{tag.label}" (key: {tag.key}, id: {tag.id})')
    if tag.parent_id is not None:
        parent = TagLookup(store.tags).find_by_id(tag.parent_id)
        print(f"父标签: {parent.label if parent is not None else tag.parent_id}")
    return 0


def new_post(config: Config, prompter: Optional[ConsolePrompter] = None) -> int:
    """交互式新建文章"""
    prompter = prompter or ConsolePrompter()
    print("\n=== 新建文章 ===\n")

    store = TagStore(str(config.resolve_path('build.tags_file')))
    flow = NewPostFlow(config.resolve_path('build.posts_dir'), store.load(), prompter)
    path = flow.run()
    if path is None:
        print(CANCELLED_MESSAGE)
        return 0

    print(f"\n已创建: {path}")
    draft = flow.answers['draft']
    print(f"状态: {'草稿 (draft: true)' if draft else '公开 (draft: false)'}")
    return 0


def list_tags(config: Config, include_drafts: bool = False, color: bool = True) -> int:
    """显示标签树及每个标签的文章数"""
    store = TagStore(str(config.resolve_path('build.tags_file')))
    lookup = TagLookup(store.load())
    posts = _load_posts(config).load_posts()
    counts = count_tag_usage(posts, include_drafts=include_drafts)
    print(render_tag_report(lookup.flatten(), counts, color=color))
    return 0


def migrate_images(config: Config) -> int:
    """把文章中的本地图片迁移到对象存储"""
    print("📤 检查需要上传的图片...\n")
    storage = select_storage(
        config.get('build.image_storage', 'auto'),
        str(config.resolve_path('build.storage_dir')),
        config.get('build.image_base_url', '/images'),
    )
    logger.debug("图片存储: {}", type(storage).__name__)
    migrator = ImageMigrator(
        storage,
        str(config.resolve_path('build.images_dir')),
        str(config.resolve_path('build.posts_dir')),
    )
    result = migrator.run()
    if result.uploaded == 0 and result.skipped == 0:
        print("ℹ️  没有需要处理的图片。")
        return 0

    print(f"\n📊 上传 {result.uploaded} 个，跳过 {result.skipped} 个")
    print(f"📝 更新了 {len(result.updated_files)} 篇文章")
    return 0


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='tagblog', description="带层级标签的静态博客生成器")
    parser.add_argument('--config', '-c', default='config.json', help="配置文件路径 (默认: config.json)")
    parser.add_argument('--verbose', '-v', action='store_true', help="输出调试日志")

    subparsers = parser.add_subparsers(dest='command', required=True)

    build_parser = subparsers.add_parser('build', help="生成静态网站")
    build_parser.add_argument('--env', choices=['development', 'production'],
                              help="运行环境 (默认读取 BLOG_ENV 或配置文件)")

    subparsers.add_parser('add-tag', help="交互式添加标签")
    subparsers.add_parser('new-post', help="交互式新建文章")

    list_parser = subparsers.add_parser('list-tags', help="显示标签树及使用数")
    list_parser.add_argument('--all', action='store_true', dest='include_drafts',
                             help="统计包括草稿在内的所有文章")
    list_parser.add_argument('--no-color', action='store_false', dest='color',
                             help="不输出 ANSI 颜色")

    subparsers.add_parser('migrate-images', help="把本地图片迁移到对象存储")
    return parser


def setup_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level='DEBUG' if verbose else 'INFO')


def main(argv: Optional[List[str]] = None) -> int:
    """
    主函数

    Returns:
        退出码：成功或用户取消为 0，出错为 1
    """
    args = create_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = Config(args.config)
        config.load()

        if args.command == 'build':
            return build(config, args.env)
        if args.command == 'add-tag':
            return add_tag(config)
        if args.command == 'new-post':
            return new_post(config)
        if args.command == 'list-tags':
            return list_tags(config, include_drafts=args.include_drafts, color=args.color)
        return migrate_images(config)

    except KeyboardInterrupt:
        print(CANCELLED_MESSAGE)
        return 0

    except ConfigError as e:
        logger.error("配置错误: {}", e)
        return 1

    except (TagError, CommentsError, ThemeError, StorageError) as e:
        logger.error("数据错误: {}", e)
        return 1

    except (RendererError, GenerationError) as e:
        logger.error("生成失败: {}", e)
        return 1

    except FileExistsError as e:
        logger.error("{}", e)
        return 1

    except Exception:
        logger.exception("未处理的错误")
        return 1


if __name__ == '__main__':
    sys.exit(main())
